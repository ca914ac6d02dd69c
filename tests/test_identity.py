"""Tests for IdentityKey validation and storage keys."""

import pytest

from companion_chat.exceptions import ValidationError
from companion_chat.memory.identity import IdentityKey


def test_storage_key_format(key):
    assert key.storage_key == "chat:aria:test-model:user-1"


def test_valid_key(key):
    assert key.is_valid()
    key.require_valid()


@pytest.mark.parametrize(
    "persona_id,model_id,user_id,bad_field",
    [
        ("", "m", "u", "persona_id"),
        ("p", "   ", "u", "model_id"),
        ("p", "m", "", "user_id"),
        ("", "", "", "persona_id"),
    ],
)
def test_require_valid_names_first_empty_field(persona_id, model_id, user_id, bad_field):
    key = IdentityKey(persona_id=persona_id, model_id=model_id, user_id=user_id)
    assert not key.is_valid()
    with pytest.raises(ValidationError) as exc_info:
        key.require_valid()
    assert exc_info.value.field == bad_field
    assert exc_info.value.status_code == 400


def test_keys_are_value_objects():
    a = IdentityKey("p", "m", "u")
    b = IdentityKey("p", "m", "u")
    assert a == b
    assert len({a, b}) == 1
