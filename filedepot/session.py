"""
Identity provider and the process-wide session context.

The identity provider answers "who is this token" and "is that user an
administrator". ``SessionContext`` wraps it for the rest of the app: it is
started once by the app lifespan, hands out read-only snapshots, and tells
subscribers whenever a session begins or ends.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions
from werkzeug.security import check_password_hash, generate_password_hash

from filedepot.db import DbClient
from filedepot.results import Err, Notice, Ok, Result, StoreError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class User:
    id: str
    email: str


@dataclass(frozen=True)
class SessionSnapshot:
    user: Optional[User] = None
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


ANONYMOUS = SessionSnapshot()


class SessionStoreError(Exception):
    """The session store could not be reached."""


@dataclass(frozen=True)
class SessionChange:
    token: str
    previous: SessionSnapshot
    current: SessionSnapshot


class SessionStore(Protocol):
    """
    Maps opaque session tokens to user ids.

    Implementations raise ``SessionStoreError`` when a token cannot be
    written or removed.
    """

    def create(self, user_id: str) -> str:
        ...

    def get(self, token: str) -> Optional[str]:
        ...

    def delete(self, token: str) -> None:
        ...


@dataclass
class InMemorySessionStore:
    """Dict-backed session tokens for testing/dev."""

    sessions: dict[str, str] = field(default_factory=dict)

    def create(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        self.sessions[token] = user_id
        return token

    def get(self, token: str) -> Optional[str]:
        return self.sessions.get(token)

    def delete(self, token: str) -> None:
        self.sessions.pop(token, None)


@dataclass
class RedisSessionStore:
    """Redis-backed session tokens with a sliding TTL."""

    url: str
    key_prefix: str = "filedepot:session:"
    ttl_seconds: int = 7 * 24 * 3600

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    def _reconnect(self) -> None:
        logger.warning("Lost connection to session store, reconnecting")
        self.client = redis.Redis.from_url(self.url)

    def create(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        try:
            self.client.setex(self._key(token), self.ttl_seconds, user_id)
        except redis_exceptions.ConnectionError as exc:
            self._reconnect()
            raise SessionStoreError("Could not store the session") from exc
        return token

    def get(self, token: str) -> Optional[str]:
        try:
            value = self.client.get(self._key(token))
            if value is None:
                return None
            self.client.expire(self._key(token), self.ttl_seconds)
            return value.decode("utf-8")
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; reconnect and treat the
            # session as absent for this request.
            self._reconnect()
            return None

    def delete(self, token: str) -> None:
        try:
            self.client.delete(self._key(token))
        except redis_exceptions.ConnectionError as exc:
            self._reconnect()
            raise SessionStoreError("Could not remove the session") from exc

    def close(self) -> None:
        self.client.close()


class IdentityProvider(Protocol):
    def sign_in(self, email: str, password: str) -> Optional[str]:
        ...

    def sign_up(
        self, email: str, password: str, is_admin: bool = False
    ) -> Result[User]:
        ...

    def get_user(self, token: str) -> Optional[User]:
        ...

    def is_admin(self, user_id: str) -> bool:
        ...

    def sign_out(self, token: str) -> None:
        ...


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class DbIdentityProvider:
    """Users live in the relational store, session tokens in a SessionStore."""

    def __init__(self, db: DbClient, sessions: SessionStore):
        self.db = db
        self.sessions = sessions

    def sign_in(self, email: str, password: str) -> Optional[str]:
        result = self.db.get_user_by_email(normalize_email(email))
        if isinstance(result, Err):
            logger.error("User lookup failed: %s", result.error.message)
            return None
        user = result.data
        if not user or not check_password_hash(user.password_hash, password):
            return None
        return self.sessions.create(user.id)

    def sign_up(
        self, email: str, password: str, is_admin: bool = False
    ) -> Result[User]:
        result = self.db.insert_user(
            normalize_email(email), generate_password_hash(password), is_admin
        )
        if isinstance(result, Err):
            return result
        return Ok(User(id=result.data.id, email=result.data.email))

    def get_user(self, token: str) -> Optional[User]:
        user_id = self.sessions.get(token)
        if not user_id:
            return None
        result = self.db.get_user(user_id)
        if isinstance(result, Err):
            logger.error("User lookup failed: %s", result.error.message)
            return None
        if result.data is None:
            return None
        return User(id=result.data.id, email=result.data.email)

    def is_admin(self, user_id: str) -> bool:
        result = self.db.get_user(user_id)
        if isinstance(result, Err) or result.data is None:
            return False
        return result.data.is_admin

    def sign_out(self, token: str) -> None:
        self.sessions.delete(token)

    def close(self) -> None:
        close = getattr(self.sessions, "close", None)
        if close:
            close()


SessionListener = Callable[[SessionChange], None]


class SessionContext:
    """
    Shared view of who is signed in.

    Callers read immutable ``SessionSnapshot`` values and register listeners
    with ``subscribe``; nothing outside this class mutates session state.
    """

    def __init__(self, identity: IdentityProvider):
        self._identity = identity
        self._listeners: list[SessionListener] = []
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        self._started = True
        logger.info("Session context started (%s)", self._identity.__class__.__name__)

    def close(self) -> None:
        self._listeners.clear()
        close = getattr(self._identity, "close", None)
        if close:
            close()
        self._started = False
        logger.info("Session context closed")

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("Session context has not been started")

    def snapshot(self, token: Optional[str]) -> SessionSnapshot:
        self._require_started()
        if not token:
            return ANONYMOUS
        user = self._identity.get_user(token)
        if user is None:
            return ANONYMOUS
        return SessionSnapshot(user=user, is_admin=self._identity.is_admin(user.id))

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: SessionChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    def sign_in(self, email: str, password: str) -> tuple[Optional[str], Notice]:
        self._require_started()
        if not normalize_email(email) or not password:
            return None, Notice.error("Please enter your email and password", kind="validation")
        try:
            token = self._identity.sign_in(email, password)
        except SessionStoreError:
            logger.exception("Sign-in failed")
            return None, Notice.error("Could not sign in")
        if token is None:
            return None, Notice.error("Invalid email or password", kind="unauthorized")
        current = self.snapshot(token)
        self._notify(SessionChange(token=token, previous=ANONYMOUS, current=current))
        return token, Notice.success("Signed in")

    def sign_up(self, email: str, password: str) -> Notice:
        self._require_started()
        email = normalize_email(email)
        if not email or "@" not in email:
            return Notice.error("Please enter a valid email address", kind="validation")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            return Notice.error(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                kind="validation",
            )
        result = self._identity.sign_up(email, password)
        if isinstance(result, Err):
            if result.error.is_conflict:
                return Notice.error("This email is already registered", kind="conflict")
            logger.error("Sign-up failed: %s", result.error.message)
            return Notice.error("Sign-up failed")
        return Notice.success("Account created, you can now sign in")

    def sign_out(self, token: Optional[str]) -> Notice:
        self._require_started()
        if not token:
            return Notice.info("Already signed out")
        previous = self.snapshot(token)
        try:
            self._identity.sign_out(token)
        except SessionStoreError:
            logger.exception("Sign-out failed")
            return Notice.error("Could not sign out")
        self._notify(SessionChange(token=token, previous=previous, current=ANONYMOUS))
        return Notice.success("Signed out")


def create_user(
    identity: IdentityProvider, email: str, password: str, is_admin: bool = False
) -> Result[User]:
    """Provision a user directly, bypassing the self-service sign-up rules."""
    if not normalize_email(email):
        return Err(StoreError("email is required"))
    return identity.sign_up(email, password, is_admin=is_admin)
