from __future__ import annotations

import json
import logging

import pytest

from app.auth.errors import InvalidRefreshToken, MissingCode
from app.auth.orchestrator import AuthOrchestrator
from app.models.user import OAuthProvider
from app.services.users import UserDirectory


@pytest.fixture()
def orchestrator(db_session, token_service, identity_exchange):
    return AuthOrchestrator(db_session, token_service, identity_exchange, UserDirectory(db_session))


def _events(caplog) -> list[dict]:
    out = []
    for record in caplog.records:
        if record.name != "app.auth.orchestrator":
            continue
        out.append(json.loads(record.getMessage()))
    return out


def test_login_and_refresh_events_never_contain_tokens(orchestrator, google_signer, caplog):
    caplog.set_level(logging.INFO, logger="app.auth.orchestrator")

    session = orchestrator.login_via_one_tap(google_signer.sign(), "pytest")
    refreshed = orchestrator.refresh_session(session.tokens.refresh_token, "pytest")

    events = _events(caplog)
    assert [e["event"] for e in events] == ["login", "refresh"]
    assert events[0]["method"] == "google_one_tap"
    assert events[0]["user_id"] == session.user.id

    for token in (*vars(session.tokens).values(), *vars(refreshed.tokens).values()):
        assert token not in caplog.text


def test_failed_login_is_logged_with_code(orchestrator, caplog):
    caplog.set_level(logging.INFO, logger="app.auth.orchestrator")

    with pytest.raises(MissingCode):
        orchestrator.login_via_oauth_callback(OAuthProvider.GITHUB, None, "abcdefgh12", None)

    assert _events(caplog) == [{"event": "login_failed", "method": "github", "code": "MISSING_CODE"}]


def test_refresh_with_revoked_token(orchestrator, token_service, oauth_user, caplog):
    caplog.set_level(logging.INFO, logger="app.auth.orchestrator")
    token = token_service.issue_refresh_token(oauth_user.id, None)
    token_service.revoke_all_user_tokens(oauth_user.id)

    with pytest.raises(InvalidRefreshToken):
        orchestrator.refresh_session(token, None)
    assert _events(caplog)[-1] == {"event": "refresh_failed", "code": "INVALID_REFRESH_TOKEN"}


def test_logout_everywhere_reports_count(orchestrator, token_service, oauth_user):
    for _ in range(2):
        token_service.issue_refresh_token(oauth_user.id, None)
    assert orchestrator.logout_everywhere(oauth_user.id) == 2


def test_logout_with_only_refresh_token(orchestrator, token_service, oauth_user):
    token = token_service.issue_refresh_token(oauth_user.id, None)
    orchestrator.logout(token)
    assert token_service.verify_refresh_token(token) is None

    # Garbage and repeats are fine.
    orchestrator.logout(token)
    orchestrator.logout("garbage")
    orchestrator.logout(None)
