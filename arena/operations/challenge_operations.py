"""
Challenge Operations Service

Handles challenge creation and the accept flow that reserves the opponent's
stake, stands up the contest on the game service and records the ledger
entry inside one atomic scope.
"""

from typing import Any, Mapping, Optional
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import Config
from arena.constants import LedgerConstants
from arena.database.database import Database
from arena.database.ledger import Ledger, LedgerEntry
from arena.database.models import (
    Challenge, ChallengeStatus, TransactionState, TransactionType
)
from arena.operations.challenge_validator import validate_challenge_proposal
from arena.services.external import call_with_timeout
from arena.services.game_client import CreatedContest, GameServiceClient, SERVICE_NAME
from arena.utils.exceptions import (
    AuthorizationError, ChallengeNotFoundError, ExternalServiceError,
    InsufficientFundsError, PersistenceError, StateConflictError, ValidationError
)
from arena.utils.logger import setup_logger

OPPOSITE_COLOR = {"white": "black", "black": "white"}


class ChallengeOperations:
    """
    Service class for challenge-related operations.

    Challenges are created by the challenger and change status only through
    accept_challenge.
    """

    def __init__(self, db: Database, game_client: GameServiceClient,
                 ledger: Optional[Ledger] = None, external_timeout: Optional[float] = None):
        """
        Initialize ChallengeOperations.

        Args:
            db: Database instance for persistence
            game_client: Client for the external game service
            ledger: Ledger primitives (a default instance is created if omitted)
            external_timeout: Per-call bound for game service calls, defaults to
                Config.EXTERNAL_CALL_TIMEOUT_SECONDS
        """
        self.db = db
        self.game_client = game_client
        self.ledger = ledger or Ledger()
        self.external_timeout = external_timeout
        self.logger = setup_logger(f"{__name__}.ChallengeOperations")

    async def create_challenge(self, challenger: str, access_token: str,
                               proposal: Mapping[str, Any]) -> Challenge:
        """
        Create a challenge waiting for the opponent's acceptance.

        The challenger's funds are only checked here, not reserved.

        Args:
            challenger: Username of the player proposing the wager
            access_token: Challenger's game-service token, stored so the contest
                can be accepted on their behalf later
            proposal: Raw proposal (time_limit, opponent_time_limit, increment,
                stake, color, opponent)

        Raises:
            ValidationError: If the proposal is malformed
            InsufficientFundsError: If the challenger cannot cover the stake
            PersistenceError: If the challenge cannot be saved
        """
        terms = validate_challenge_proposal(proposal)

        opponent = terms.opponent
        if not isinstance(opponent, str) or not opponent.strip():
            raise ValidationError("opponent", "required")
        if opponent == challenger:
            raise ValidationError("opponent", "cannot challenge yourself")

        try:
            async with self.db.transaction() as session:
                balance = await self.ledger.get_balance(session, challenger)
                if balance < terms.stake:
                    raise InsufficientFundsError(challenger, balance, terms.stake)

                challenge = Challenge(
                    challenger=challenger,
                    opponent=opponent,
                    time_limit=terms.time_limit,
                    opponent_time_limit=terms.opponent_time_limit,
                    increment=terms.increment,
                    stake=terms.stake,
                    color=terms.color,
                    status=ChallengeStatus.WAITING_FOR_ACCEPTANCE,
                    challenger_token=access_token,
                    expire_after_seconds=Config.CHALLENGE_EXPIRY_SECONDS
                )
                session.add(challenge)
                await session.flush()
                await session.refresh(challenge)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to save challenge from {challenger}", exc_info=True)
            raise PersistenceError("create challenge", str(e)) from e

        self.logger.info(
            f"Created challenge {challenge.id}: {challenger} vs {opponent} for {terms.stake} sats"
        )
        return challenge

    async def accept_challenge(self, challenge_id: int, username: str, access_token: str) -> Challenge:
        """
        Accept a challenge as its opponent.

        Runs as a single atomic scope: the stake debit, the ledger row and the
        status change are only committed once the contest exists on the game
        service. Any failure rolls all of them back.

        Known gap: game-service calls cannot be undone. If the commit fails after
        the contest was created, the contest stays live while the challenge
        remains WAITING_FOR_ACCEPTANCE, so a retry creates a second contest.

        Args:
            challenge_id: ID of the challenge to accept
            username: Username of the accepting player
            access_token: Accepting player's game-service token

        Returns:
            The accepted Challenge with its external game id

        Raises:
            ChallengeNotFoundError: If the challenge does not exist
            AuthorizationError: If username is not the challenge's opponent
            StateConflictError: If the challenge is not waiting for acceptance
            InsufficientFundsError: If the opponent cannot cover the stake
            ExternalServiceError: If any game-service call fails or times out
            PersistenceError: If the scope cannot be committed
        """
        async def _accept(session: AsyncSession) -> Challenge:
            # 1. Load the challenge, locked against concurrent accepts
            challenge = await self._load_challenge_for_update(challenge_id, session)
            if challenge is None:
                raise ChallengeNotFoundError(challenge_id)

            # 2. Only the invited opponent may accept
            if challenge.opponent != username:
                raise AuthorizationError(username, f"accept challenge {challenge_id}")

            # 3. Must still be waiting
            if challenge.status != ChallengeStatus.WAITING_FOR_ACCEPTANCE:
                raise StateConflictError(
                    f"Challenge {challenge_id} is {challenge.status.value}, cannot accept"
                )

            # 4. Reserve the stake and record the ledger entry
            new_balance = await self.ledger.reserve_and_debit(session, username, challenge.stake)
            await self.ledger.record_transaction(session, LedgerEntry(
                username=username,
                type=TransactionType.ACCEPT_CHALLENGE,
                amount=-challenge.stake,
                state=TransactionState.SETTLED,
                detail=LedgerConstants.CHALLENGE_DETAIL_TEMPLATE.format(challenger=challenge.challenger)
            ))
            self.logger.info(
                f"Reserved {challenge.stake} from {username} for challenge {challenge_id} "
                f"(balance now {new_balance})"
            )

            # 5. Stand up the contest before anything is committed
            contest = await self._start_contest(challenge, access_token)

            # 6. Bind the contest, only if the challenge is still waiting
            result = await session.execute(
                update(Challenge)
                .where(
                    Challenge.id == challenge_id,
                    Challenge.status == ChallengeStatus.WAITING_FOR_ACCEPTANCE
                )
                .values(status=ChallengeStatus.ACCEPTED, external_game_id=contest.game_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StateConflictError(f"Challenge {challenge_id} was accepted concurrently")

            await session.refresh(challenge)
            return challenge

        try:
            # 7. Commit happens when the scope exits
            async with self.db.transaction() as session:
                challenge = await _accept(session)
        except ExternalServiceError:
            self.logger.error(
                f"Game service failed while accepting challenge {challenge_id}; rolled back",
                exc_info=True
            )
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to commit acceptance of challenge {challenge_id}", exc_info=True)
            raise PersistenceError("accept challenge", str(e)) from e

        self.logger.info(
            f"Challenge {challenge_id} accepted by {username}; contest {challenge.external_game_id}"
        )
        return challenge

    async def _load_challenge_for_update(self, challenge_id: int, session: AsyncSession) -> Optional[Challenge]:
        result = await session.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _start_contest(self, challenge: Challenge, opponent_token: str) -> CreatedContest:
        """
        Create the contest as the opponent, accept it as the challenger, then
        even out the clocks if the two limits differ.
        """
        # a. Created from the opponent's side, so the color is inverted to give
        #    the challenger their stated preference
        contest = await call_with_timeout(
            self.game_client.create_contest(
                opponent_username=challenge.challenger,
                token=opponent_token,
                clock_limit=min(challenge.time_limit, challenge.opponent_time_limit),
                increment=challenge.increment,
                color=OPPOSITE_COLOR[challenge.color]
            ),
            SERVICE_NAME, "create contest", self.external_timeout
        )

        # b. Accept on the challenger's behalf with their stored token
        accepted = await call_with_timeout(
            self.game_client.accept_contest(contest.game_id, challenge.challenger_token),
            SERVICE_NAME, "accept contest", self.external_timeout
        )
        if not accepted.ok:
            raise ExternalServiceError(SERVICE_NAME, f"contest {contest.game_id} was not accepted")

        # c. The clock starts at the smaller limit; the side with the smaller
        #    limit adds the difference to its opponent
        if challenge.time_limit != challenge.opponent_time_limit:
            seconds = abs(challenge.time_limit - challenge.opponent_time_limit)
            if challenge.time_limit < challenge.opponent_time_limit:
                token = challenge.challenger_token
            else:
                token = opponent_token

            added = await call_with_timeout(
                self.game_client.add_time(contest.game_id, seconds, token),
                SERVICE_NAME, "add time", self.external_timeout
            )
            if not added.ok:
                raise ExternalServiceError(SERVICE_NAME, f"could not add {seconds}s to contest {contest.game_id}")

        return contest
