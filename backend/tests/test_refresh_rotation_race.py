"""
Concurrent rotation of one refresh token.

Uses a file-backed SQLite database so each thread gets its own connection
and Session, the same way two requests would.
"""
from __future__ import annotations

import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.auth.errors import InvalidRefreshToken
from app.auth.tokens import TokenService
from app.core.base import Base
from app.models.refresh_token import RefreshToken
from app.models.user import OAuthProvider, User
from app.services.refresh_tokens import RefreshTokenStore


@pytest.fixture()
def file_sessionmaker(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


def _seed_user(SessionFactory) -> str:
    db = SessionFactory()
    try:
        user = User(
            email="racer@example.com",
            name="Racer",
            provider=OAuthProvider.GOOGLE,
            provider_account_id="race-1",
        )
        db.add(user)
        db.commit()
        return user.id
    finally:
        db.close()


def test_sequential_double_rotation_yields_one_successor(file_sessionmaker, auth_config, clock):
    user_id = _seed_user(file_sessionmaker)
    db = file_sessionmaker()
    try:
        service = TokenService(RefreshTokenStore(db), auth_config.tokens, clock=clock)
        original = service.issue_refresh_token(user_id, None)

        successor = service.rotate_refresh_token(user_id, original, None)
        with pytest.raises(InvalidRefreshToken):
            service.rotate_refresh_token(user_id, original, None)

        assert service.verify_refresh_token(successor) is not None
        assert RefreshTokenStore(db).count_active_for_user(user_id, now=clock.now) == 1
    finally:
        db.close()


def test_concurrent_rotation_has_exactly_one_winner(file_sessionmaker, auth_config, clock):
    user_id = _seed_user(file_sessionmaker)

    setup_db = file_sessionmaker()
    try:
        original = TokenService(
            RefreshTokenStore(setup_db), auth_config.tokens, clock=clock
        ).issue_refresh_token(user_id, None)
    finally:
        setup_db.close()

    barrier = threading.Barrier(2)
    lock = threading.Lock()
    successes: list[str] = []
    failures: list[BaseException] = []

    def rotate() -> None:
        db = file_sessionmaker()
        try:
            service = TokenService(RefreshTokenStore(db), auth_config.tokens, clock=clock)
            barrier.wait(timeout=10)
            try:
                new_token = service.rotate_refresh_token(user_id, original, None)
            except InvalidRefreshToken as exc:
                with lock:
                    failures.append(exc)
            else:
                with lock:
                    successes.append(new_token)
        finally:
            db.close()

    threads = [threading.Thread(target=rotate) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(successes) == 1
    assert len(failures) == 1

    check_db = file_sessionmaker()
    try:
        assert RefreshTokenStore(check_db).count_active_for_user(user_id, now=clock.now) == 1
        assert check_db.query(RefreshToken).filter(RefreshToken.user_id == user_id).count() == 2
    finally:
        check_db.close()
