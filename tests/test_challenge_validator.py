"""Tests for challenge proposal validation and its first-violation ordering"""

import pytest

from arena.operations.challenge_validator import ChallengeProposal, validate_challenge_proposal
from arena.utils.exceptions import ErrorClass, ValidationError

from conftest import proposal


def test_valid_proposal():
    result = validate_challenge_proposal(proposal())
    assert result == ChallengeProposal(
        time_limit=300, opponent_time_limit=300, increment=0,
        stake=100, color="white", opponent="bob"
    )


@pytest.mark.parametrize("overrides", [
    {"time_limit": 60, "opponent_time_limit": 600},
    {"increment": 5},
    {"stake": 3_000_000},
    {"color": "black"},
])
def test_boundary_values_accepted(overrides):
    validate_challenge_proposal(proposal(**overrides))


@pytest.mark.parametrize("field, value", [
    ("time_limit", 45),
    ("time_limit", 615),
    ("time_limit", 74),
    ("time_limit", None),
    ("opponent_time_limit", 30),
    ("opponent_time_limit", 615),
    ("opponent_time_limit", 74),
    ("opponent_time_limit", None),
    ("increment", -1),
    ("increment", 6),
    ("increment", None),
    ("stake", 99),
    ("stake", 3_000_001),
    ("stake", None),
    ("color", "test"),
    ("color", None),
])
def test_invalid_field_is_reported(field, value):
    with pytest.raises(ValidationError) as exc_info:
        validate_challenge_proposal(proposal(**{field: value}))
    assert exc_info.value.field == field
    assert exc_info.value.error_class == ErrorClass.BAD_INPUT


def test_missing_key_is_required():
    terms = proposal()
    del terms["stake"]
    with pytest.raises(ValidationError) as exc_info:
        validate_challenge_proposal(terms)
    assert exc_info.value.field == "stake"
    assert exc_info.value.reason == "required"


def test_non_integer_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_challenge_proposal(proposal(increment="3"))
    assert exc_info.value.field == "increment"

    with pytest.raises(ValidationError) as exc_info:
        validate_challenge_proposal(proposal(increment=True))
    assert exc_info.value.field == "increment"


@pytest.mark.parametrize("overrides, first_field", [
    ({"time_limit": 1, "opponent_time_limit": 1, "increment": 9, "stake": 1, "color": "red"}, "time_limit"),
    ({"opponent_time_limit": 1, "increment": 9, "stake": 1, "color": "red"}, "opponent_time_limit"),
    ({"increment": 9, "stake": 1, "color": "red"}, "increment"),
    ({"stake": 1, "color": "red"}, "stake"),
])
def test_first_violation_wins(overrides, first_field):
    with pytest.raises(ValidationError) as exc_info:
        validate_challenge_proposal(proposal(**overrides))
    assert exc_info.value.field == first_field
