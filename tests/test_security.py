import pytest

from app.core.config import _parse_cors_origins
from app.core.exceptions import BadRequestError, UnauthorizedError
from app.core.security import (
    create_access_token,
    create_password_reset_token,
    decode_access_token,
    decode_password_reset_token,
    hash_password,
    validate_password_strength,
    verify_password,
)


def test_access_token_roundtrip():
    token = create_access_token("65f0aa", "agent@example.com", "AGENT")
    payload = decode_access_token(token)
    assert payload == {"user_id": "65f0aa", "email": "agent@example.com", "role": "AGENT"}


def test_access_token_tampered():
    token = create_access_token("65f0aa", "agent@example.com", "USER")
    with pytest.raises(UnauthorizedError) as exc:
        decode_access_token(token[:-2] + ("A" if token[-1] != "A" else "B") + token[-1])
    assert exc.value.message == "Invalid token"


def test_reset_token_not_accepted_as_access_token():
    reset = create_password_reset_token("65f0aa", "agent@example.com")
    with pytest.raises(UnauthorizedError):
        decode_access_token(reset)
    assert decode_password_reset_token(reset)["type"] == "password_reset"


def test_access_token_not_accepted_as_reset_token():
    access = create_access_token("65f0aa", "agent@example.com", "USER")
    with pytest.raises(UnauthorizedError):
        decode_password_reset_token(access)


def test_password_hash_and_verify():
    hashed = hash_password("Secret123")
    assert hashed != "Secret123"
    assert verify_password("Secret123", hashed)
    assert not verify_password("secret123", hashed)
    assert not verify_password("Secret123", "not-a-bcrypt-hash")


@pytest.mark.parametrize("password", ["Short1A", "alllowercase1", "ALLUPPER123", "NoDigitsHere"])
def test_weak_passwords_rejected(password):
    with pytest.raises(BadRequestError):
        validate_password_strength(password)


def test_strong_password_accepted():
    validate_password_strength("Secret123")


def test_cors_origins_parsing():
    assert _parse_cors_origins("") == ["http://localhost:3000"]
    assert _parse_cors_origins("https://a.co, https://b.co") == ["https://a.co", "https://b.co"]
    assert _parse_cors_origins('["https://a.co"]') == ["https://a.co"]
    assert _parse_cors_origins("[not json") == ["http://localhost:3000"]
