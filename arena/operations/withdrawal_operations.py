"""
Withdrawal Operations Service

Sends a user's funds out through the payment gateway. The OPEN ledger row,
the payment, the settlement of that row and the balance change share one
atomic scope.
"""

from dataclasses import dataclass
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.database.database import Database
from arena.database.ledger import Ledger, LedgerEntry
from arena.database.models import Transaction, TransactionState, TransactionType
from arena.services.external import call_with_timeout
from arena.services.payment_gateway import PaymentGateway, SERVICE_NAME
from arena.utils.exceptions import (
    ExternalServiceError, InsufficientFundsError, PersistenceError, ValidationError
)
from arena.utils.logger import setup_logger


@dataclass
class WithdrawalResult:
    """Result of a completed withdrawal"""
    complete: bool
    transaction: Optional[Transaction] = None
    balance: Optional[int] = None


class WithdrawalOperations:
    """Service class for outbound payments."""

    def __init__(self, db: Database, gateway: PaymentGateway,
                 ledger: Optional[Ledger] = None, external_timeout: Optional[float] = None):
        self.db = db
        self.gateway = gateway
        self.ledger = ledger or Ledger()
        self.external_timeout = external_timeout
        self.logger = setup_logger(f"{__name__}.WithdrawalOperations")

    async def send_payment(self, username: str, payment_request: str) -> WithdrawalResult:
        """
        Pay a payment request from the user's balance.

        The amount always comes from the decoded request. Success is only
        reported after the commit returns.

        Open issue: a payment call that times out is treated as failed and
        rolled back, although the network may still have delivered it.

        Raises:
            PaymentDecodeError: If the payment request cannot be decoded
            ValidationError: If the decoded amount is not positive
            InsufficientFundsError: If the balance cannot cover the amount
            ExternalServiceError: If the payment fails or times out
            PersistenceError: If the scope cannot be committed
        """
        # 1. Decode; the decoded amount is authoritative
        decoded = await call_with_timeout(
            self.gateway.decode(payment_request), SERVICE_NAME, "decode", self.external_timeout
        )
        amount = decoded.amount

        # 2. Reject non-positive amounts
        if amount <= 0:
            raise ValidationError("amount", "payment request must be for a positive amount")

        async def _withdraw(session: AsyncSession) -> WithdrawalResult:
            # 3. Lock and check the balance
            balance = await self.ledger.lock_balance(session, username)
            if balance < amount:
                raise InsufficientFundsError(username, balance, amount)

            # 4. Record the withdrawal as OPEN
            withdrawal = await self.ledger.record_transaction(session, LedgerEntry(
                username=username,
                type=TransactionType.WITHDRAWAL,
                amount=-amount,
                state=TransactionState.OPEN,
                payment_hash=decoded.payment_hash,
                payment_request=payment_request
            ))

            # 5. Irreversible external payment
            await call_with_timeout(
                self.gateway.pay(payment_request), SERVICE_NAME, "pay", self.external_timeout
            )
            self.logger.info(f"Payment {decoded.payment_hash} for {amount} sats sent for {username}")

            # 6. Settle the row and move the balance
            withdrawal = await self.ledger.finalize_transaction(
                session, withdrawal.id, TransactionState.SETTLED, new_amount=-amount
            )
            new_balance = await self.ledger.apply_delta(session, username, -amount)

            return WithdrawalResult(complete=True, transaction=withdrawal, balance=new_balance)

        try:
            # 7. Commit happens when the scope exits
            async with self.db.transaction() as session:
                result = await _withdraw(session)
        except ExternalServiceError:
            self.logger.error(f"Payment failed for {username}; withdrawal rolled back", exc_info=True)
            raise
        except SQLAlchemyError as e:
            self.logger.error(
                f"Failed to commit withdrawal {decoded.payment_hash} for {username}", exc_info=True
            )
            raise PersistenceError("withdrawal", str(e)) from e

        self.logger.info(f"Withdrawal of {amount} sats committed for {username}")
        return result
