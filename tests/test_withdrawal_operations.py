"""Tests for the outbound payment flow"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.database.models import TransactionState, TransactionType
from arena.operations.withdrawal_operations import WithdrawalOperations
from arena.utils.exceptions import (
    ErrorClass, ExternalServiceError, InsufficientFundsError, PaymentDecodeError,
    PersistenceError, ValidationError, classify_error
)

USER = "carol"


async def withdrawals_for(db, username):
    return [t for t in await db.get_transactions(username) if t.type == TransactionType.WITHDRAWAL]


async def test_successful_withdrawal(db, ledger, withdrawal_ops, gateway, fund):
    await fund(USER, 1000)
    gateway.add_invoice("lnbc400", 400, "hash400")

    result = await withdrawal_ops.send_payment(USER, "lnbc400")

    assert result.complete is True
    assert result.balance == 600
    assert gateway.paid == ["lnbc400"]
    assert await db.get_balance(USER) == 600

    rows = await withdrawals_for(db, USER)
    assert len(rows) == 1
    assert rows[0].state == TransactionState.SETTLED
    assert rows[0].amount == -400
    assert rows[0].payment_hash == "hash400"
    assert rows[0].id == result.transaction.id

    async with db.get_session() as session:
        report = await ledger.verify_balance_integrity(session, USER)
    assert report["integrity_check"] is True


async def test_withdraw_entire_balance(db, withdrawal_ops, gateway, fund):
    await fund(USER, 250)
    gateway.add_invoice("lnbc250", 250, "hash250")

    await withdrawal_ops.send_payment(USER, "lnbc250")

    assert await db.get_balance(USER) == 0


async def test_undecodable_request_is_bad_input(db, withdrawal_ops, gateway, fund):
    await fund(USER, 1000)

    with pytest.raises(PaymentDecodeError) as exc_info:
        await withdrawal_ops.send_payment(USER, "garbage")

    assert classify_error(exc_info.value) == (ErrorClass.BAD_INPUT, "Invalid payment request")
    assert gateway.paid == []
    assert await withdrawals_for(db, USER) == []


async def test_non_positive_amount_rejected(db, withdrawal_ops, gateway, fund):
    await fund(USER, 1000)
    gateway.add_invoice("lnbc0", 0, "hash0")

    with pytest.raises(ValidationError):
        await withdrawal_ops.send_payment(USER, "lnbc0")

    assert gateway.paid == []
    assert await withdrawals_for(db, USER) == []


async def test_insufficient_balance_creates_no_row(db, withdrawal_ops, gateway, fund):
    await fund(USER, 100)
    gateway.add_invoice("lnbc500", 500, "hash500")

    with pytest.raises(InsufficientFundsError) as exc_info:
        await withdrawal_ops.send_payment(USER, "lnbc500")

    assert exc_info.value.error_class == ErrorClass.BAD_INPUT
    assert gateway.paid == []
    assert await db.get_balance(USER) == 100
    assert await withdrawals_for(db, USER) == []


async def test_unknown_user_has_nothing_to_withdraw(db, withdrawal_ops, gateway):
    gateway.add_invoice("lnbc100", 100, "hash100")

    with pytest.raises(InsufficientFundsError):
        await withdrawal_ops.send_payment("nobody", "lnbc100")

    assert await withdrawals_for(db, "nobody") == []


async def test_failed_payment_leaves_no_residual_row(db, withdrawal_ops, gateway, fund):
    await fund(USER, 1000)
    gateway.add_invoice("lnbc400", 400, "hash400")
    gateway.fail_pay = True

    with pytest.raises(ExternalServiceError) as exc_info:
        await withdrawal_ops.send_payment(USER, "lnbc400")

    assert exc_info.value.error_class == ErrorClass.SERVER_ERROR
    assert await db.get_balance(USER) == 1000
    assert await withdrawals_for(db, USER) == []


async def test_payment_timeout_rolls_back(db, gateway, ledger, fund):
    await fund(USER, 1000)
    gateway.add_invoice("lnbc400", 400, "hash400")
    gateway.pay_delay = 1.0
    impatient_ops = WithdrawalOperations(db, gateway, ledger, external_timeout=0.05)

    with pytest.raises(ExternalServiceError):
        await impatient_ops.send_payment(USER, "lnbc400")

    assert await db.get_balance(USER) == 1000
    assert await withdrawals_for(db, USER) == []


async def test_commit_failure_after_payment(db, withdrawal_ops, gateway, fund, monkeypatch):
    await fund(USER, 1000)
    gateway.add_invoice("lnbc400", 400, "hash400")

    async def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    with pytest.raises(PersistenceError):
        await withdrawal_ops.send_payment(USER, "lnbc400")
    monkeypatch.undo()

    # The payment went out but nothing local was committed
    assert gateway.paid == ["lnbc400"]
    assert await db.get_balance(USER) == 1000
    assert await withdrawals_for(db, USER) == []


async def test_caller_cannot_override_decoded_amount(db, withdrawal_ops, gateway, fund):
    await fund(USER, 1000)
    gateway.add_invoice("lnbc-big", 900, "hash-big")

    await withdrawal_ops.send_payment(USER, "lnbc-big")

    assert await db.get_balance(USER) == 100


async def test_overlapping_withdrawals_pay_at_most_once(db, ledger, withdrawal_ops, gateway, fund):
    await fund(USER, 1000)
    gateway.add_invoice("lnbcA", 600, "hashA")
    gateway.add_invoice("lnbcB", 600, "hashB")
    gateway.pay_delay = 0.2

    results = await asyncio.gather(
        withdrawal_ops.send_payment(USER, "lnbcA"),
        withdrawal_ops.send_payment(USER, "lnbcB"),
        return_exceptions=True
    )

    completed = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, InsufficientFundsError)]
    assert len(completed) == 1
    assert len(refused) == 1
    # The refused request never reached the node
    assert len(gateway.paid) == 1
    assert await db.get_balance(USER) == 400
    assert len(await withdrawals_for(db, USER)) == 1

    async with db.get_session() as session:
        report = await ledger.verify_balance_integrity(session, USER)
    assert report["integrity_check"] is True
