from typing import Optional, List
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import event, select, or_
from contextlib import asynccontextmanager

from arena.config import Config
from arena.constants import LedgerConstants
from arena.database.models import Base, Balance, Challenge, Transaction
from arena.utils.exceptions import AuthorizationError, ChallengeNotFoundError, NotFoundError
from arena.utils.logger import setup_logger

# Execution option marking connections that must begin with a write lock
BEGIN_IMMEDIATE = "arena_begin_immediate"


def _install_sqlite_begin(sync_engine):
    """
    Take over transaction begin on SQLite.

    The driver defers BEGIN until the first write, so reads made under
    with_for_update() would not be locked. Connections carrying the
    BEGIN_IMMEDIATE option start with BEGIN IMMEDIATE and hold the database
    write lock from their first statement to commit or rollback.
    """
    @event.listens_for(sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def _emit_begin(conn):
        if conn.get_execution_options().get(BEGIN_IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


class Database:
    """Engine, session factory and read helpers for the arena tables.

    Writes to balances, transactions and challenges go through
    transaction() together with the Ledger primitives.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.write_engine = None
        self.async_session = None

    def _resolve_url(self) -> str:
        if self.database_url is None:
            return Config.get_async_database_url()
        if self.database_url.startswith('sqlite:///'):
            return self.database_url.replace('sqlite:///', 'sqlite+aiosqlite:///', 1)
        return self.database_url

    async def initialize(self):
        """Create the engine and any missing tables"""
        database_url = self._resolve_url()
        self.logger.info(f"Connecting to {database_url.split('://', 1)[0]} database")

        self.engine = create_async_engine(database_url, echo=Config.DEBUG, future=True)
        if self.engine.dialect.name == 'sqlite':
            _install_sqlite_begin(self.engine.sync_engine)
            self.write_engine = self.engine.execution_options(**{BEGIN_IMMEDIATE: True})
        else:
            # Row locks from with_for_update() serialize writers
            self.write_engine = self.engine

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Arena tables ready")

    @property
    def session_factory(self):
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Session for reads; nothing is committed"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Atomic scope for one financial operation.

        The yielded session must be handed to every Ledger call that belongs
        to the operation. Leaving the block normally commits; an exception
        escaping the block, or a failing commit, rolls everything back and
        re-raises.

        Scopes are serialized: on SQLite the whole scope holds the database
        write lock, elsewhere the rows read with_for_update() stay locked until
        the scope ends. No lock is released while an external call is awaited.

        Usage:
            async with db.transaction() as session:
                await ledger.reserve_and_debit(session, username, stake)
                await ledger.record_transaction(session, entry)
        """
        async with self.async_session(bind=self.write_engine) as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                # Includes CancelledError from a timed-out external call
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Dispose of the engine's connection pool"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database engine disposed")

    # Read-only lookups (own session, never part of a financial scope)
    async def get_balance(self, username: str) -> int:
        """Get current balance for a user; unknown users read as zero"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Balance.amount).where(Balance.username == username)
            )
            amount = result.scalar_one_or_none()
            return amount if amount is not None else 0

    async def get_challenge(self, challenge_id: int) -> Optional[Challenge]:
        """Get a challenge by ID"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Challenge).where(Challenge.id == challenge_id)
            )
            return result.scalar_one_or_none()

    async def get_challenge_for_user(self, challenge_id: int, username: str) -> Challenge:
        """Get a challenge the user takes part in"""
        challenge = await self.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)
        if username not in (challenge.challenger, challenge.opponent):
            raise AuthorizationError(username, f"view challenge {challenge_id}")
        return challenge

    async def get_challenges_for_user(self, username: str,
                                      limit: int = LedgerConstants.DEFAULT_LIST_LIMIT) -> List[Challenge]:
        """Get the most recent challenges where the user is either side"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Challenge).where(
                    or_(Challenge.challenger == username, Challenge.opponent == username)
                ).order_by(Challenge.created_at.desc(), Challenge.id.desc()).limit(limit)
            )
            return result.scalars().all()

    async def get_transactions(self, username: str,
                               limit: int = LedgerConstants.DEFAULT_LIST_LIMIT) -> List[Transaction]:
        """Get ledger history for a user, newest first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Transaction).where(
                    Transaction.username == username
                ).order_by(Transaction.id.desc()).limit(limit)
            )
            return result.scalars().all()

    async def get_transaction_for_user(self, transaction_id: int, username: str) -> Transaction:
        """Get a single ledger row owned by the user"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Transaction).where(Transaction.id == transaction_id)
            )
            transaction = result.scalar_one_or_none()

        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        if transaction.username != username:
            raise AuthorizationError(username, f"view transaction {transaction_id}")
        return transaction
