"""
Application-wide constants for Wager Arena.

This module contains the contest limits and external-service defaults used
throughout the codebase to improve maintainability and clarity.
"""

class ChallengeConstants:
    """Bounds enforced on every challenge proposal."""

    # Clock limits (seconds) for both sides
    MIN_TIME_LIMIT = 60
    MAX_TIME_LIMIT = 600
    TIME_LIMIT_STEP = 15

    # Increment per move (seconds)
    MIN_INCREMENT = 0
    MAX_INCREMENT = 5

    # Stake (satoshis)
    MIN_STAKE = 100
    MAX_STAKE = 3_000_000

    VALID_COLORS = ("white", "black")

class ContestConstants:
    """Fixed terms for contests created on the game service."""

    RATED = True
    VARIANT = "standard"
    RULES = "noClaimWin"

class LedgerConstants:
    """Constants for ledger bookkeeping."""

    # Default page size for transaction and challenge listings
    DEFAULT_LIST_LIMIT = 100

    CHALLENGE_DETAIL_TEMPLATE = "challenge vs {challenger}"
    INVOICE_MEMO_TEMPLATE = "fund {username} on wager arena"
