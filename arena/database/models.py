from sqlalchemy import (
    Column, Integer, String, DateTime, Text, BigInteger,
    Enum as SQLEnum, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from enum import Enum

Base = declarative_base()

class ChallengeStatus(Enum):
    WAITING_FOR_ACCEPTANCE = "waiting_for_acceptance"
    ACCEPTED = "accepted"

class TransactionType(Enum):
    INVOICE = "invoice"
    WITHDRAWAL = "withdrawal"
    ACCEPT_CHALLENGE = "accept_challenge"

class TransactionState(Enum):
    OPEN = "OPEN"
    SETTLED = "SETTLED"

class Balance(Base):
    """
    Current spendable amount per user, in satoshis.

    This is a cache of the ledger: amount always equals the sum of the user's
    SETTLED transaction amounts. Rows are only mutated under a row lock inside
    an atomic scope owned by an operations class.
    """
    __tablename__ = 'balances'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    amount = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint('amount >= 0', name='ck_balance_non_negative'),
    )

    def __repr__(self):
        return f"<Balance(username='{self.username}', amount={self.amount})>"

class Transaction(Base):
    """
    Append-only ledger entry.

    OPEN rows track an in-flight external operation and move to SETTLED exactly
    once. Rows are never deleted.
    """
    __tablename__ = 'transactions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, index=True)
    type = Column(SQLEnum(TransactionType), nullable=False)
    detail = Column(Text, nullable=False, default="")
    amount = Column(BigInteger, nullable=False)  # Signed: debits are negative
    state = Column(SQLEnum(TransactionState), nullable=False, default=TransactionState.OPEN)

    # External correlation fields
    payment_hash = Column(String(128), nullable=True, index=True)
    payment_addr = Column(String(128), nullable=True, index=True)
    payment_request = Column(Text, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return (f"<Transaction(id={self.id}, username='{self.username}', "
                f"type={self.type.value if self.type else None}, amount={self.amount}, "
                f"state={self.state.value if self.state else None})>")

class Challenge(Base):
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True)

    # Participants (asymmetric: the challenger proposes, the opponent accepts)
    challenger = Column(String(100), nullable=False)
    opponent = Column(String(100), nullable=False)

    # Clock terms (seconds)
    time_limit = Column(Integer, nullable=False)
    opponent_time_limit = Column(Integer, nullable=False)
    increment = Column(Integer, nullable=False)

    # Stakes
    stake = Column(BigInteger, nullable=False)
    color = Column(String(5), nullable=False)  # Challenger's preference

    status = Column(SQLEnum(ChallengeStatus), nullable=False, default=ChallengeStatus.WAITING_FOR_ACCEPTANCE)
    external_game_id = Column(String(64), nullable=True)

    # Stored so the contest can be accepted on the challenger's behalf later
    challenger_token = Column(String(255), nullable=False)

    # Timestamps
    expire_after_seconds = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index('ix_challenges_challenger', 'challenger'),
        Index('ix_challenges_opponent', 'opponent'),
    )

    def __repr__(self):
        return (f"<Challenge(id={self.id}, challenger='{self.challenger}', "
                f"opponent='{self.opponent}', stake={self.stake}, status={self.status.value if self.status else None})>")
