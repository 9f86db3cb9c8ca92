"""
Balance store and append-only transaction log.

Every method takes the caller's session and only flushes. Durability is
decided by the operations class that owns the enclosing db.transaction()
scope, so a balance change and its ledger row commit or roll back together.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from arena.database.models import Balance, Transaction, TransactionState, TransactionType
from arena.utils.exceptions import (
    InsufficientFundsError, NotFoundError, StateConflictError, ValidationError
)
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class LedgerEntry:
    """A ledger row to be appended"""
    username: str
    type: TransactionType
    amount: int
    state: TransactionState
    detail: str = ""
    payment_hash: Optional[str] = None
    payment_addr: Optional[str] = None
    payment_request: Optional[str] = None


class Ledger:
    """Locked read-modify-write primitives over balances and transactions."""

    async def _load_balance_for_update(self, session: AsyncSession, username: str) -> Optional[Balance]:
        # SQLite ignores FOR UPDATE; there the scope already holds the write lock
        result = await session.execute(
            select(Balance)
            .where(Balance.username == username)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_balance(self, session: AsyncSession, username: str) -> int:
        """Current balance; an unknown user reads as zero and no row is created"""
        result = await session.execute(
            select(Balance.amount).where(Balance.username == username)
        )
        amount = result.scalar_one_or_none()
        return amount if amount is not None else 0

    async def lock_balance(self, session: AsyncSession, username: str) -> int:
        """Lock the user's balance row for the rest of the scope and return its amount"""
        balance = await self._load_balance_for_update(session, username)
        return balance.amount if balance is not None else 0

    async def reserve_and_debit(self, session: AsyncSession, username: str, amount: int) -> int:
        """
        Lock the balance row, verify it covers amount and decrement it.

        Returns:
            The new balance

        Raises:
            InsufficientFundsError: If amount exceeds the current balance
        """
        if amount <= 0:
            raise ValidationError("amount", "must be positive")

        balance = await self._load_balance_for_update(session, username)
        current = balance.amount if balance is not None else 0

        if amount > current:
            raise InsufficientFundsError(username, current, amount)

        new_amount = await self.apply_delta(session, username, -amount)
        logger.debug(f"Debited {amount} from {username}: {current} -> {new_amount}")
        return new_amount

    async def credit(self, session: AsyncSession, username: str, amount: int) -> int:
        """Lock the balance row (creating it if missing) and increment it"""
        if amount <= 0:
            raise ValidationError("amount", "must be positive")

        balance = await self._load_balance_for_update(session, username)
        if balance is None:
            balance = Balance(username=username, amount=0)
            session.add(balance)
            await session.flush()

        previous = balance.amount
        balance.amount = previous + amount
        await session.flush()

        logger.debug(f"Credited {amount} to {username}: {previous} -> {balance.amount}")
        return balance.amount

    async def apply_delta(self, session: AsyncSession, username: str, delta: int) -> int:
        """
        Apply a signed delta with a single UPDATE, independent of earlier reads.

        Raises:
            InsufficientFundsError: If the result would be negative
        """
        result = await session.execute(
            update(Balance)
            .where(Balance.username == username, Balance.amount + delta >= 0)
            .values(amount=Balance.amount + delta)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            if delta > 0:
                return await self.credit(session, username, delta)
            current = await self.get_balance(session, username)
            raise InsufficientFundsError(username, current, -delta)

        new_amount = await self.get_balance(session, username)
        logger.debug(f"Applied delta {delta} to {username}: now {new_amount}")
        return new_amount

    async def record_transaction(self, session: AsyncSession, entry: LedgerEntry) -> Transaction:
        """Append a ledger row and return it with its generated id"""
        transaction = Transaction(
            username=entry.username,
            type=entry.type,
            detail=entry.detail,
            amount=entry.amount,
            state=entry.state,
            payment_hash=entry.payment_hash,
            payment_addr=entry.payment_addr,
            payment_request=entry.payment_request
        )

        session.add(transaction)
        await session.flush()  # Use flush to get ID, let caller handle commit
        await session.refresh(transaction)

        logger.info(
            f"Recorded {entry.state.value} {entry.type.value} transaction {transaction.id} "
            f"for {entry.username}: {entry.amount}"
        )
        return transaction

    async def finalize_transaction(self, session: AsyncSession, transaction_id: int,
                                   new_state: TransactionState,
                                   new_amount: Optional[int] = None) -> Transaction:
        """
        Move an OPEN row to new_state in place, optionally replacing its amount.

        Raises:
            NotFoundError: If the row does not exist
            StateConflictError: If the row is no longer OPEN
        """
        result = await session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()

        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        if transaction.state != TransactionState.OPEN:
            raise StateConflictError(
                f"Transaction {transaction_id} is {transaction.state.value}, cannot finalize"
            )

        transaction.state = new_state
        if new_amount is not None:
            transaction.amount = new_amount
        await session.flush()

        logger.info(f"Finalized transaction {transaction_id} as {new_state.value} ({transaction.amount})")
        return transaction

    async def get_transaction_by_payment_addr(self, session: AsyncSession,
                                              payment_addr: str) -> Optional[Transaction]:
        """Lock and return the ledger row correlated with a payment address"""
        result = await session.execute(
            select(Transaction)
            .where(Transaction.payment_addr == payment_addr)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def verify_balance_integrity(self, session: AsyncSession, username: str) -> dict:
        """Verify the stored balance against the sum of SETTLED ledger rows"""
        stored_balance = await self.get_balance(session, username)

        ledger_result = await session.execute(
            select(func.sum(Transaction.amount)).where(
                Transaction.username == username,
                Transaction.state == TransactionState.SETTLED
            )
        )
        calculated_balance = ledger_result.scalar_one_or_none() or 0

        return {
            'username': username,
            'stored_balance': stored_balance,
            'calculated_balance': calculated_balance,
            'integrity_check': stored_balance == calculated_balance
        }
