from typing import Optional

from arena.database.database import Database
from arena.database.ledger import Ledger
from arena.operations.challenge_operations import ChallengeOperations
from arena.operations.deposit_operations import DepositOperations
from arena.operations.withdrawal_operations import WithdrawalOperations
from arena.services.game_client import GameServiceClient
from arena.services.identity_cache import IdentityCache, IdentityResolver
from arena.services.payment_gateway import PaymentGateway
from arena.utils.logger import setup_logger
from arena.utils.redis_utils import RedisUtils


class WagerArena:
    """Wires the ledger core to its collaborators for the surrounding application"""

    def __init__(self, database_url: Optional[str] = None,
                 game_client: Optional[GameServiceClient] = None,
                 gateway: Optional[PaymentGateway] = None):
        self.logger = setup_logger(__name__)
        self.db = Database(database_url)
        self.ledger = Ledger()
        self.game_client = game_client or GameServiceClient()
        self.gateway = gateway or PaymentGateway()

        self.challenges = ChallengeOperations(self.db, self.game_client, self.ledger)
        self.withdrawals = WithdrawalOperations(self.db, self.gateway, self.ledger)
        self.deposits = DepositOperations(self.db, self.ledger)

        self.redis_client = None
        self.identity: Optional[IdentityResolver] = None

    async def setup(self):
        """Called when the application is starting up"""
        self.logger.info("Setting up Wager Arena...")

        await self.db.initialize()

        # Identity cache is optional; without Redis every token is resolved remotely
        self.redis_client = await RedisUtils.create_redis_client()
        if self.redis_client is not None:
            self.identity = IdentityResolver(IdentityCache(self.redis_client), self.game_client)
            self.logger.info("Identity cache initialized")
        else:
            self.logger.warning("Redis unavailable; identity cache disabled")

        self.logger.info("Wager Arena setup complete!")

    async def resolve_user(self, token: str) -> str:
        """Resolve the username owning a game-service token"""
        if self.identity is not None:
            return await self.identity.resolve(token)
        account = await self.game_client.get_account(token)
        return account.username

    async def close(self):
        if self.redis_client is not None:
            await self.redis_client.aclose()
        await self.db.close()
        self.logger.info("Wager Arena shut down")

