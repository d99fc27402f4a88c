"""AuthService and repositories without the HTTP layer"""
from datetime import timedelta

import pytest

from sarvasync.config import get_settings
from sarvasync.errors import InvalidOrRevokedError, TokenExpiredError
from sarvasync.UAA import utils
from sarvasync.UAA.repository import RefreshTokenRepository, UserRepository
from sarvasync.UAA.services import AuthService


async def noop_sender(to_email, link):
    return None


@pytest.fixture
def svc(session):
    return AuthService(session, email_sender=noop_sender)


async def test_upsert_by_email_creates_once(session):
    repo = UserRepository(session)
    user, created = await repo.upsert_by_email("a@example.com")
    again, created_again = await repo.upsert_by_email("a@example.com")
    assert created and not created_again
    assert again.id == user.id


async def test_issue_session_stores_only_hash(svc, session):
    user, _ = await svc.users.upsert_by_email("a@example.com")
    tokens = await svc.issue_session(user.id)
    row = await RefreshTokenRepository(session).get_active_by_jti(user.id, tokens.refresh_jti)
    assert row is not None
    assert row.jti == utils.verify_refresh_token(tokens.refresh_token)["jti"]
    assert row.hashed_token != tokens.refresh_token
    assert utils.verify_token_hash(tokens.refresh_token, row.hashed_token)


async def test_refresh_then_reuse(svc):
    user, _ = await svc.users.upsert_by_email("a@example.com")
    first = await svc.issue_session(user.id)
    second = await svc.refresh_session(first.refresh_token)
    assert utils.verify_refresh_token(second.refresh_token)["userId"] == str(user.id)

    with pytest.raises(InvalidOrRevokedError):
        await svc.refresh_session(first.refresh_token)
    # the rotated token still works
    await svc.refresh_session(second.refresh_token)


async def test_revoke_if_active_only_wins_once(svc, session):
    user, _ = await svc.users.upsert_by_email("a@example.com")
    tokens = await svc.issue_session(user.id)
    repo = RefreshTokenRepository(session)
    row = await repo.get_active_by_jti(user.id, tokens.refresh_jti)
    assert await repo.revoke_if_active(row.id) is True
    assert await repo.revoke_if_active(row.id) is False
    assert await repo.get_active_by_jti(user.id, tokens.refresh_jti) is None


async def test_refresh_checks_a_single_hash_among_many_sessions(svc, monkeypatch):
    user, _ = await svc.users.upsert_by_email("a@example.com")
    sessions = [await svc.issue_session(user.id) for _ in range(10)]

    checked = []
    real_verify = utils.verify_token_hash

    def counting_verify(raw, hashed):
        checked.append(raw)
        return real_verify(raw, hashed)

    monkeypatch.setattr(utils, "verify_token_hash", counting_verify)

    await svc.refresh_session(sessions[0].refresh_token)
    assert len(checked) == 1

    checked.clear()
    with pytest.raises(InvalidOrRevokedError):
        await svc.refresh_session(sessions[0].refresh_token)
    # a replayed token has no active row left, so no hash is checked at all
    assert checked == []


async def test_refresh_rejects_token_whose_hash_does_not_match(svc, session):
    user, _ = await svc.users.upsert_by_email("a@example.com")
    tokens = await svc.issue_session(user.id)
    # same user and jti, different lifetime, so a different token
    forged = utils._encode(
        {"userId": str(user.id), "type": utils.REFRESH},
        get_settings().REFRESH_TOKEN_SECRET,
        timedelta(hours=1),
        jti=tokens.refresh_jti,
    )
    assert forged != tokens.refresh_token
    with pytest.raises(InvalidOrRevokedError):
        await svc.refresh_session(forged)
    # the genuine token is untouched
    await svc.refresh_session(tokens.refresh_token)


async def test_logout_revokes_every_session(svc):
    user, _ = await svc.users.upsert_by_email("a@example.com")
    first = await svc.issue_session(user.id)
    second = await svc.issue_session(user.id)

    assert await svc.logout(user.id) == 2
    for token in (first, second):
        with pytest.raises(InvalidOrRevokedError):
            await svc.refresh_session(token.refresh_token)
    assert await svc.logout(user.id) == 0


async def test_redeem_magic_link(svc):
    user, tokens = await svc.redeem_magic_link(utils.create_magic_link_token("Mixed@Example.com"))
    assert user.email == "mixed@example.com"
    assert utils.verify_access_token(tokens.access_token)["userId"] == str(user.id)


async def test_request_magic_link_builds_callback_url(session):
    sent = []

    async def capture(to_email, link):
        sent.append((to_email, link))

    await AuthService(session, email_sender=capture).request_magic_link(" Someone@Example.com ")
    assert sent[0][0] == "someone@example.com"
    assert sent[0][1].startswith("http://api.test/auth/magiclink/callback?token=")


async def test_expired_refresh_token(svc):
    expired = utils._encode({"userId": "x", "type": utils.REFRESH}, get_settings().REFRESH_TOKEN_SECRET, timedelta(seconds=-1))
    with pytest.raises(TokenExpiredError):
        await svc.refresh_session(expired)
