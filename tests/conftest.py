"""
Shared fixtures for the ledger and settlement tests.

Every test gets its own file-backed SQLite database through the real Database
class, plus in-process stand-ins for the game service and payment gateway
that record each call.
"""

import asyncio
import os
import tempfile
from typing import Dict, List, Optional, Set, Tuple

os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "wager_arena_test_logs"))

import pytest
import pytest_asyncio

from arena.database.database import Database
from arena.database.ledger import Ledger
from arena.operations.challenge_operations import ChallengeOperations
from arena.operations.deposit_operations import DepositOperations
from arena.operations.withdrawal_operations import WithdrawalOperations
from arena.services.game_client import ActionResult, Account, CreatedContest
from arena.services.payment_gateway import DecodedPayment, PaymentResult
from arena.utils.exceptions import ExternalServiceError, PaymentDecodeError

CHALLENGER = "alice"
OPPONENT = "bob"
CHALLENGER_TOKEN = "token-alice"
OPPONENT_TOKEN = "token-bob"


class FakeGameClient:
    """Records calls; fail_on names the steps that should raise."""

    def __init__(self):
        self.calls: List[Tuple] = []
        self.fail_on: Set[str] = set()
        self.not_ok_on: Set[str] = set()
        self.delay: Dict[str, float] = {}
        self.accounts: Dict[str, str] = {}
        self._next_id = 0

    async def _maybe_fail(self, step: str):
        if step in self.delay:
            await asyncio.sleep(self.delay[step])
        if step in self.fail_on:
            raise ExternalServiceError("Game service", f"{step} failed")

    async def create_contest(self, opponent_username, token, clock_limit, increment, color):
        self.calls.append(("create", opponent_username, token, clock_limit, increment, color))
        await self._maybe_fail("create")
        self._next_id += 1
        return CreatedContest(game_id=f"game{self._next_id}")

    async def accept_contest(self, game_id, token):
        self.calls.append(("accept", game_id, token))
        await self._maybe_fail("accept")
        return ActionResult(ok="accept" not in self.not_ok_on)

    async def add_time(self, game_id, seconds, token):
        self.calls.append(("add_time", game_id, seconds, token))
        await self._maybe_fail("add_time")
        return ActionResult(ok="add_time" not in self.not_ok_on)

    async def get_account(self, token):
        self.calls.append(("account", token))
        return Account(username=self.accounts[token])

    def calls_named(self, name: str) -> List[Tuple]:
        return [call for call in self.calls if call[0] == name]


class FakePaymentGateway:
    """Decodes from a fixed table and records payments."""

    def __init__(self):
        self.invoices: Dict[str, DecodedPayment] = {}
        self.paid: List[str] = []
        self.fail_pay = False
        self.pay_delay: Optional[float] = None

    def add_invoice(self, payment_request: str, amount: int, payment_hash: str):
        self.invoices[payment_request] = DecodedPayment(amount=amount, payment_hash=payment_hash)

    async def decode(self, payment_request):
        if payment_request not in self.invoices:
            raise PaymentDecodeError("unknown payment request")
        return self.invoices[payment_request]

    async def pay(self, payment_request):
        if self.pay_delay:
            await asyncio.sleep(self.pay_delay)
        if self.fail_pay:
            raise ExternalServiceError("Payment gateway", "payment failed: no route")
        self.paid.append(payment_request)
        return PaymentResult(payment_hash=self.invoices[payment_request].payment_hash)


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'arena_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def game_client():
    return FakeGameClient()


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def challenge_ops(db, game_client, ledger):
    return ChallengeOperations(db, game_client, ledger, external_timeout=1.0)


@pytest.fixture
def withdrawal_ops(db, gateway, ledger):
    return WithdrawalOperations(db, gateway, ledger, external_timeout=1.0)


@pytest.fixture
def deposit_ops(db, ledger):
    return DepositOperations(db, ledger)


@pytest.fixture
def fund(deposit_ops):
    """Credit a user through a settled invoice so the ledger stays consistent."""
    counter = {"n": 0}

    async def _fund(username: str, amount: int):
        counter["n"] += 1
        addr = f"addr-{username}-{counter['n']}"
        await deposit_ops.record_invoice(username, f"lnbc-{addr}", addr)
        return await deposit_ops.settle_invoice(addr, amount)

    return _fund


def proposal(**overrides):
    base = {
        "time_limit": 300,
        "opponent_time_limit": 300,
        "increment": 0,
        "stake": 100,
        "color": "white",
        "opponent": OPPONENT,
    }
    base.update(overrides)
    return base


@pytest.fixture
def make_challenge(challenge_ops, fund):
    """Create a challenge from alice to bob, funding alice for the sanity check."""

    async def _make(**overrides):
        terms = proposal(**overrides)
        await fund(CHALLENGER, terms["stake"])
        return await challenge_ops.create_challenge(CHALLENGER, CHALLENGER_TOKEN, terms)

    return _make
