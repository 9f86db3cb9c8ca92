"""
Validation and normalization of incoming challenge proposals.

Fields are checked in a fixed order and the first violation is reported:
time_limit, opponent_time_limit, increment, stake, color.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from arena.constants import ChallengeConstants
from arena.utils.exceptions import ValidationError


@dataclass(frozen=True)
class ChallengeProposal:
    """A validated challenge proposal"""
    time_limit: int
    opponent_time_limit: int
    increment: int
    stake: int
    color: str
    opponent: Optional[str] = None


def _require_int(proposal: Mapping[str, Any], field: str) -> int:
    value = proposal.get(field)
    if value is None:
        raise ValidationError(field, "required")
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "must be an integer")
    return value


def _validate_time_limit(proposal: Mapping[str, Any], field: str) -> int:
    value = _require_int(proposal, field)
    if not ChallengeConstants.MIN_TIME_LIMIT <= value <= ChallengeConstants.MAX_TIME_LIMIT:
        raise ValidationError(
            field,
            f"must be between {ChallengeConstants.MIN_TIME_LIMIT} and {ChallengeConstants.MAX_TIME_LIMIT}"
        )
    if value % ChallengeConstants.TIME_LIMIT_STEP != 0:
        raise ValidationError(field, f"must be a multiple of {ChallengeConstants.TIME_LIMIT_STEP}")
    return value


def validate_challenge_proposal(proposal: Mapping[str, Any]) -> ChallengeProposal:
    """
    Validate a raw challenge proposal.

    Args:
        proposal: Mapping with time_limit, opponent_time_limit, increment,
            stake, color and optionally opponent

    Returns:
        ChallengeProposal with the validated values

    Raises:
        ValidationError: Naming the first field that is missing or out of range
    """
    time_limit = _validate_time_limit(proposal, "time_limit")
    opponent_time_limit = _validate_time_limit(proposal, "opponent_time_limit")

    increment = _require_int(proposal, "increment")
    if not ChallengeConstants.MIN_INCREMENT <= increment <= ChallengeConstants.MAX_INCREMENT:
        raise ValidationError(
            "increment",
            f"must be between {ChallengeConstants.MIN_INCREMENT} and {ChallengeConstants.MAX_INCREMENT}"
        )

    stake = _require_int(proposal, "stake")
    if not ChallengeConstants.MIN_STAKE <= stake <= ChallengeConstants.MAX_STAKE:
        raise ValidationError(
            "stake",
            f"must be between {ChallengeConstants.MIN_STAKE} and {ChallengeConstants.MAX_STAKE}"
        )

    color = proposal.get("color")
    if color is None:
        raise ValidationError("color", "required")
    if color not in ChallengeConstants.VALID_COLORS:
        raise ValidationError("color", "must be 'white' or 'black'")

    return ChallengeProposal(
        time_limit=time_limit,
        opponent_time_limit=opponent_time_limit,
        increment=increment,
        stake=stake,
        color=color,
        opponent=proposal.get("opponent")
    )
