"""Tests for account registration, login sessions, and actor-change callbacks."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from src.models.actor import Actor
from src.models.enums import Role
from src.services.session import (
    DuplicateAccount,
    InvalidCredentials,
    MissingDepartment,
    SessionManager,
    hash_password,
    verify_password,
)
from src.services.storage import StorageManager


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(StorageManager(redis_url=None), hash_iterations=1_000)


class TestPasswordHashing:
    def test_verify_round_trip(self) -> None:
        encoded = hash_password("secret1", iterations=1_000)
        assert encoded.startswith("pbkdf2_sha256$1000$")
        assert verify_password("secret1", encoded) is True
        assert verify_password("secret2", encoded) is False

    def test_salted(self) -> None:
        assert hash_password("secret1", iterations=1_000) != hash_password("secret1", iterations=1_000)

    def test_malformed_hash_never_verifies(self) -> None:
        assert verify_password("secret1", "plain-text") is False


class TestRegister:
    async def test_register_logs_in(self, sessions: SessionManager) -> None:
        token, actor = await sessions.register(
            name="Asha",
            email="Asha@Example.org",
            password="secret1",
            role=Role.CITIZEN,
        )
        assert token
        assert actor.role is Role.CITIZEN
        assert actor.email == "asha@example.org"
        assert await sessions.current_actor(token) == actor

    async def test_password_not_stored_in_plain_text(self, sessions: SessionManager) -> None:
        await sessions.register(name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN)
        raw = await sessions._storage.get("user:asha@example.org")
        assert "secret1" not in str(raw)

    async def test_duplicate_email_rejected(self, sessions: SessionManager) -> None:
        await sessions.register(name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN)
        with pytest.raises(DuplicateAccount):
            await sessions.register(name="Other", email="ASHA@example.org", password="secret2", role=Role.NGO)

    async def test_short_password_rejected(self, sessions: SessionManager) -> None:
        with pytest.raises(InvalidCredentials) as exc_info:
            await sessions.register(name="Asha", email="asha@example.org", password="12345", role=Role.CITIZEN)
        assert "at least 6" in exc_info.value.reason

    async def test_authority_requires_department(self, sessions: SessionManager) -> None:
        with pytest.raises(MissingDepartment):
            await sessions.register(
                name="Officer",
                email="officer@example.org",
                password="secret1",
                role=Role.AUTHORITY,
                department="  ",
            )

    async def test_authority_keeps_department(self, sessions: SessionManager) -> None:
        _, actor = await sessions.register(
            name="Officer",
            email="officer@example.org",
            password="secret1",
            role=Role.AUTHORITY,
            department="Public Works",
        )
        assert actor.department == "Public Works"

    async def test_blank_name_rejected(self, sessions: SessionManager) -> None:
        with pytest.raises(InvalidCredentials):
            await sessions.register(name="  ", email="x@example.org", password="secret1", role=Role.CITIZEN)


class TestLoginLogout:
    async def test_login_returns_same_identity(self, sessions: SessionManager) -> None:
        _, registered = await sessions.register(
            name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN,
        )
        token, actor = await sessions.login("asha@example.org", "secret1")
        assert actor == registered
        assert await sessions.current_actor(token) == actor

    @pytest.mark.parametrize(
        ("email", "password"),
        [("asha@example.org", "wrong-pass"), ("nobody@example.org", "secret1"), ("", ""), ("asha@example.org", "")],
    )
    async def test_bad_credentials(self, sessions: SessionManager, email: str, password: str) -> None:
        await sessions.register(name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN)
        with pytest.raises(InvalidCredentials):
            await sessions.login(email, password)

    async def test_logout_ends_session(self, sessions: SessionManager) -> None:
        token, _ = await sessions.register(
            name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN,
        )
        assert await sessions.logout(token) is True
        assert await sessions.current_actor(token) is None
        assert await sessions.logout(token) is False

    async def test_unknown_or_missing_token(self, sessions: SessionManager) -> None:
        assert await sessions.current_actor(None) is None
        assert await sessions.current_actor("") is None
        assert await sessions.current_actor("not-a-token") is None

    async def test_expired_session(self) -> None:
        sessions = SessionManager(StorageManager(redis_url=None), hash_iterations=1_000, session_ttl_seconds=0)
        token, _ = await sessions.register(
            name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN,
        )
        # TTL of zero expires as soon as the monotonic clock moves.
        await asyncio.sleep(0.01)
        assert await sessions.current_actor(token) is None


class TestActorChange:
    async def test_callbacks_on_login_and_logout(self, sessions: SessionManager) -> None:
        events: list[tuple[str, Actor | None]] = []
        sessions.on_actor_change(lambda token, actor: events.append((token, actor)))

        token, actor = await sessions.register(
            name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN,
        )
        await sessions.logout(token)

        assert events == [(token, actor), (token, None)]

    async def test_unsubscribe(self, sessions: SessionManager) -> None:
        events: list[tuple[str, Actor | None]] = []
        unsubscribe = sessions.on_actor_change(lambda token, actor: events.append((token, actor)))
        unsubscribe()

        await sessions.register(name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN)
        assert events == []

    async def test_failing_listener_does_not_break_login(self, sessions: SessionManager) -> None:
        def _boom(token: str, actor: Actor | None) -> None:
            raise RuntimeError("listener bug")

        sessions.on_actor_change(_boom)
        token, _ = await sessions.register(
            name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN,
        )
        assert await sessions.current_actor(token) is not None


class TestSharedBackend:
    async def test_simultaneous_registration_creates_one_account(
        self,
        redis_storage: Callable[[], StorageManager],
    ) -> None:
        worker_a = SessionManager(redis_storage(), hash_iterations=1_000)
        worker_b = SessionManager(redis_storage(), hash_iterations=1_000)

        results = await asyncio.gather(
            worker_a.register(name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN),
            worker_b.register(name="Imposter", email="ASHA@example.org", password="other99", role=Role.NGO),
            return_exceptions=True,
        )

        assert sum(isinstance(r, DuplicateAccount) for r in results) == 1
        [(_, winner)] = [r for r in results if isinstance(r, tuple)]
        password = "secret1" if winner.display_name == "Asha" else "other99"
        _, actor = await worker_a.login("asha@example.org", password)
        assert actor == winner

    async def test_raised_minimum_does_not_lock_out_existing_accounts(
        self,
        redis_storage: Callable[[], StorageManager],
    ) -> None:
        before = SessionManager(redis_storage(), hash_iterations=1_000, min_password_length=6)
        await before.register(name="Asha", email="asha@example.org", password="secret1", role=Role.CITIZEN)

        after = SessionManager(redis_storage(), hash_iterations=1_000, min_password_length=10)
        token, _ = await after.login("asha@example.org", "secret1")
        assert await after.current_actor(token) is not None

        with pytest.raises(InvalidCredentials):
            await after.register(name="Binod", email="binod@example.org", password="secret1", role=Role.CITIZEN)
