"""Account registration and login sessions.

Accounts are stored under ``user:<email>`` (e-mail lower-cased) and
sessions under ``session:<token>`` with a TTL.  A session holds the
:class:`Actor` snapshot taken at login, so the actor stays the same for
the lifetime of the session.

Listeners registered with :meth:`SessionManager.on_actor_change` are
called with ``(token, actor)`` when a session starts and with
``(token, None)`` when it ends.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from typing import Final

import structlog
from pydantic import ValidationError

from src.models.actor import Actor, UserAccount
from src.models.enums import Role
from src.services.storage import StorageManager

logger = structlog.get_logger(__name__)

ActorChangeCallback = Callable[[str, Actor | None], None]

_HASH_ALGORITHM: Final[str] = "sha256"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SessionError(Exception):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class InvalidCredentials(SessionError):
    pass


class DuplicateAccount(SessionError):
    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"An account with e-mail {email} already exists.")


class MissingDepartment(SessionError):
    def __init__(self) -> None:
        super().__init__("Authority accounts must belong to a department.")


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(password: str, *, iterations: int, salt: bytes | None = None) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``."""
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac(_HASH_ALGORITHM, password.encode(), salt, iterations)
    return f"pbkdf2_{_HASH_ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        _, iterations, salt_hex, digest_hex = encoded.split("$")
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac(_HASH_ALGORITHM, password.encode(), salt, rounds)
    return hmac.compare_digest(candidate.hex(), digest_hex)


def _normalise_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Identity provider for the portal.

    Parameters
    ----------
    storage:
        Where accounts and sessions are persisted.
    session_ttl_seconds:
        Lifetime of a login session.
    min_password_length:
        Registration rejects shorter passwords.  Login only checks the
        stored hash, so raising the minimum never locks out old accounts.
    hash_iterations:
        PBKDF2 rounds for new password hashes.
    """

    def __init__(
        self,
        storage: StorageManager,
        *,
        session_ttl_seconds: int = 86_400,
        min_password_length: int = 6,
        hash_iterations: int = 200_000,
    ) -> None:
        self._storage = storage
        self._session_ttl = session_ttl_seconds
        self._min_password_length = min_password_length
        self._hash_iterations = hash_iterations
        self._listeners: list[ActorChangeCallback] = []

    # -- Listeners -------------------------------------------------------------

    def on_actor_change(self, callback: ActorChangeCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _emit(self, token: str, actor: Actor | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(token, actor)
            except Exception:
                logger.warning("session.listener_failed", exc_info=True)

    # -- Accounts --------------------------------------------------------------

    async def _find_account(self, email: str) -> UserAccount | None:
        raw = await self._storage.get(f"user:{_normalise_email(email)}")
        if raw is None:
            return None
        return UserAccount.model_validate(raw)

    async def register(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: Role,
        department: str | None = None,
    ) -> tuple[str, Actor]:
        """Create an account and log it in.  Returns ``(token, actor)``."""
        email = _normalise_email(email)
        if len(password) < self._min_password_length:
            raise InvalidCredentials(
                f"Password must be at least {self._min_password_length} characters long."
            )
        department = department.strip() if department and department.strip() else None
        if role == Role.AUTHORITY and department is None:
            raise MissingDepartment()
        try:
            account = UserAccount(
                name=name.strip(),
                email=email,
                role=role,
                department=department,
                password_hash=hash_password(password, iterations=self._hash_iterations),
            )
        except ValidationError as exc:
            raise InvalidCredentials("Name and e-mail are required.") from exc

        if not await self._storage.add(f"user:{email}", account.model_dump(mode="json")):
            raise DuplicateAccount(email)
        logger.info("session.registered", user_id=account.id, role=str(role))
        return await self._start_session(account)

    async def login(self, email: str, password: str) -> tuple[str, Actor]:
        """Verify credentials and start a session.  Returns ``(token, actor)``."""
        if not email or not password:
            raise InvalidCredentials("Please enter both e-mail and password.")
        account = await self._find_account(email)
        if account is None or not verify_password(password, account.password_hash):
            logger.warning("session.login_failed", email=_normalise_email(email))
            raise InvalidCredentials("Invalid e-mail or password.")
        return await self._start_session(account)

    # -- Sessions --------------------------------------------------------------

    async def _start_session(self, account: UserAccount) -> tuple[str, Actor]:
        token = secrets.token_urlsafe(32)
        actor = account.to_actor()
        await self._storage.set(
            f"session:{token}",
            actor.model_dump(mode="json"),
            ttl_seconds=self._session_ttl,
        )
        logger.info("session.started", user_id=actor.id, role=str(actor.role))
        self._emit(token, actor)
        return token, actor

    async def current_actor(self, token: str | None) -> Actor | None:
        """Return the actor bound to *token*, or *None* if there is none."""
        if not token:
            return None
        raw = await self._storage.get(f"session:{token}")
        if raw is None:
            return None
        return Actor.model_validate(raw)

    async def logout(self, token: str) -> bool:
        """End the session; returns *False* if the token was not active."""
        if not await self._storage.exists(f"session:{token}"):
            return False
        await self._storage.delete(f"session:{token}")
        logger.info("session.ended")
        self._emit(token, None)
        return True
