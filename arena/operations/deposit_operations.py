"""
Deposit Operations Service

Bookkeeping for incoming payments: an invoice is recorded as an OPEN ledger
row with a zero amount and becomes SETTLED, crediting the balance, once the
payment arrives.
"""

from typing import Optional
from sqlalchemy.exc import SQLAlchemyError

from arena.constants import LedgerConstants
from arena.database.database import Database
from arena.database.ledger import Ledger, LedgerEntry
from arena.database.models import Transaction, TransactionState, TransactionType
from arena.utils.exceptions import (
    NotFoundError, PersistenceError, StateConflictError, ValidationError
)
from arena.utils.logger import setup_logger


class DepositOperations:
    """Service class for invoice bookkeeping."""

    def __init__(self, db: Database, ledger: Optional[Ledger] = None):
        self.db = db
        self.ledger = ledger or Ledger()
        self.logger = setup_logger(f"{__name__}.DepositOperations")

    async def record_invoice(self, username: str, payment_request: str, payment_addr: str,
                             memo: Optional[str] = None) -> Transaction:
        """Record an issued invoice as an OPEN row; the amount stays zero until paid"""
        if not payment_addr:
            raise ValidationError("payment_addr", "required")

        try:
            async with self.db.transaction() as session:
                invoice = await self.ledger.record_transaction(session, LedgerEntry(
                    username=username,
                    type=TransactionType.INVOICE,
                    amount=0,
                    state=TransactionState.OPEN,
                    detail=memo or LedgerConstants.INVOICE_MEMO_TEMPLATE.format(username=username),
                    payment_addr=payment_addr,
                    payment_request=payment_request
                ))
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to record invoice for {username}", exc_info=True)
            raise PersistenceError("record invoice", str(e)) from e

        return invoice

    async def settle_invoice(self, payment_addr: str, amount: int) -> Transaction:
        """
        Mark a paid invoice SETTLED with the received amount and credit its owner.

        Raises:
            ValidationError: If amount is not positive
            NotFoundError: If no invoice matches payment_addr
            StateConflictError: If the invoice was already settled
        """
        if amount <= 0:
            raise ValidationError("amount", "must be positive")

        try:
            async with self.db.transaction() as session:
                invoice = await self.ledger.get_transaction_by_payment_addr(session, payment_addr)
                if invoice is None or invoice.type != TransactionType.INVOICE:
                    raise NotFoundError("Invoice", payment_addr)
                if invoice.state != TransactionState.OPEN:
                    raise StateConflictError(f"Invoice {invoice.id} is already {invoice.state.value}")

                invoice = await self.ledger.finalize_transaction(
                    session, invoice.id, TransactionState.SETTLED, new_amount=amount
                )
                new_balance = await self.ledger.credit(session, invoice.username, amount)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to settle invoice {payment_addr}", exc_info=True)
            raise PersistenceError("settle invoice", str(e)) from e

        self.logger.info(f"Settled invoice {invoice.id}: {invoice.username} +{amount} (balance {new_balance})")
        return invoice
