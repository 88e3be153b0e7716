import pytest

from revere.domain.messaging.exceptions import InvalidParticipantError, MessagingValidationError, SelfThreadError
from revere.domain.messaging.identity import ThreadKey, thread_id


@pytest.mark.parametrize(
    "a,b",
    [
        ("u1", "u2"),
        ("zed", "abe"),
        ("Xy9LmQ2", "aB3kP0"),
        ("10", "9"),
    ],
)
def test_thread_id_is_symmetric(a, b):
    assert thread_id(a, b) == thread_id(b, a)


def test_thread_id_sorts_and_joins():
    assert thread_id("u2", "u1") == "u1_u2"
    key = ThreadKey.from_participants("u2", "u1")
    assert key.participants() == ("u1", "u2")
    assert key.other("u1") == "u2"
    assert key.other("u2") == "u1"


def test_self_thread_rejected():
    with pytest.raises(SelfThreadError):
        thread_id("u1", "u1")


def test_validation_errors_are_value_errors():
    with pytest.raises(ValueError):
        thread_id("", "u2")
    assert issubclass(SelfThreadError, MessagingValidationError)


def test_separator_inside_identifier_rejected():
    # "a_b" + "c" would otherwise collide with "a" + "b_c"
    with pytest.raises(InvalidParticipantError):
        thread_id("a_b", "c")


def test_other_rejects_non_member():
    key = ThreadKey.from_participants("u1", "u2")
    with pytest.raises(InvalidParticipantError):
        key.other("u3")


def test_parse_round_trips_canonical_ids():
    key = ThreadKey.parse("u1_u2")
    assert key == ThreadKey.from_participants("u2", "u1")


@pytest.mark.parametrize("value", ["u2_u1", "u1", "u1_u1", ""])
def test_parse_rejects_non_canonical_ids(value):
    with pytest.raises(MessagingValidationError):
        ThreadKey.parse(value)
