"""JWT minting/verification, refresh token hashing, magic-link tokens and OAuth state"""
import time
from datetime import timedelta

import pytest
from jose import jwt

from sarvasync.config import get_settings
from sarvasync.errors import (
    InvalidStateError, InvalidTokenError, MissingIdentityError, TokenExpiredError,
)
from sarvasync.UAA import utils


def test_generate_tokens_round_trip():
    pair = utils.generate_tokens("user-1")
    assert utils.verify_access_token(pair.access_token)["userId"] == "user-1"
    payload = utils.verify_refresh_token(pair.refresh_token)
    assert payload["userId"] == "user-1"
    assert payload["jti"] == pair.refresh_jti


def test_tokens_minted_together_are_distinct():
    first, second = utils.generate_tokens("user-1"), utils.generate_tokens("user-1")
    assert first.refresh_token != second.refresh_token
    assert first.access_token != second.access_token


def test_access_token_lifetime():
    payload = utils.verify_access_token(utils.create_access_token("user-1"))
    assert payload["exp"] - payload["iat"] == 15 * 60


def test_secrets_are_not_interchangeable():
    pair = utils.generate_tokens("user-1")
    with pytest.raises(InvalidTokenError):
        utils.verify_access_token(pair.refresh_token)
    with pytest.raises(InvalidTokenError):
        utils.verify_refresh_token(pair.access_token)


def test_tampered_token_rejected():
    token = utils.create_access_token("user-1")
    with pytest.raises(InvalidTokenError):
        utils.verify_access_token(token[:-2] + ("AA" if token[-2:] != "AA" else "BB"))


def test_expired_token():
    token = utils._encode({"userId": "user-1", "type": utils.ACCESS}, get_settings().ACCESS_TOKEN_SECRET, timedelta(seconds=-5))
    with pytest.raises(TokenExpiredError):
        utils.verify_access_token(token)


def test_token_without_user_id_rejected():
    token = utils._encode({"type": utils.ACCESS}, get_settings().ACCESS_TOKEN_SECRET, timedelta(minutes=5))
    with pytest.raises(InvalidTokenError):
        utils.verify_access_token(token)


def test_refresh_token_hash_is_full_length():
    pair = utils.generate_tokens("user-1")
    other = utils.generate_tokens("user-1")
    hashed = utils.hash_token(pair.refresh_token)
    assert hashed != pair.refresh_token
    assert utils.verify_token_hash(pair.refresh_token, hashed)
    # both JWTs share their header and most of the payload
    assert not utils.verify_token_hash(other.refresh_token, hashed)


def test_verify_token_hash_with_garbage_hash():
    assert utils.verify_token_hash("anything", "not-a-hash") is False


async def test_magic_link_single_use(fake_redis):
    token = utils.create_magic_link_token("Someone@Example.com")
    assert await utils.consume_magic_link_token(token) == "someone@example.com"
    with pytest.raises(InvalidTokenError):
        await utils.consume_magic_link_token(token)


async def test_magic_link_claim_expires_with_token(fake_redis):
    token = utils.create_magic_link_token("someone@example.com")
    await utils.consume_magic_link_token(token)
    jti = jwt.get_unverified_claims(token)["jti"]
    ttl = await fake_redis.ttl(f"ml:used:{jti}")
    assert 0 < ttl <= 15 * 60


async def test_magic_link_without_email(fake_redis):
    token = utils._encode({"type": utils.MAGIC_LINK}, get_settings().MAGIC_LINK_SECRET, timedelta(minutes=5))
    with pytest.raises(MissingIdentityError):
        await utils.consume_magic_link_token(token)


async def test_access_token_is_not_a_magic_link(fake_redis):
    with pytest.raises(InvalidTokenError):
        await utils.consume_magic_link_token(utils.create_access_token("user-1"))


def test_oauth_state_round_trip():
    state = utils.encode_oauth_state("user-1", timestamp_ms=1700000000000)
    assert utils.decode_oauth_state(state) == {"userId": "user-1", "timestamp": 1700000000000}


def test_oauth_state_defaults_timestamp_to_now():
    before = int(time.time() * 1000)
    data = utils.decode_oauth_state(utils.encode_oauth_state("user-1"))
    assert data["timestamp"] >= before


@pytest.mark.parametrize("state", ["not-a-state", "W10=", "%%%"])
def test_oauth_state_undecodable(state):
    with pytest.raises(InvalidStateError):
        utils.decode_oauth_state(state)


def test_refresh_token_without_jti_is_rejected():
    s = get_settings()
    token = jwt.encode(
        {"userId": "user-1", "type": utils.REFRESH, "exp": int(time.time()) + 60},
        s.REFRESH_TOKEN_SECRET,
        algorithm=s.JWT_ALGORITHM,
    )
    with pytest.raises(InvalidTokenError):
        utils.verify_refresh_token(token)
