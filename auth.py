"""
auth.py
Authentication utilities (bcrypt hashing, verify, login, session tokens, roles).

Users live in the `users` collection as {username, password_hash, role}.
A successful login yields a signed JWT carrying the username and role;
every page re-checks it with `authorize`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import bcrypt
import jwt

import config
import db
from errors import Forbidden, RateLimited, Unauthorized, ValidationError
from models import Role

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

# Which roles may open which part of the admin panel
SECTION_ROLES: dict[str, frozenset[Role]] = {
    "members": frozenset({Role.ADMIN, Role.MEMBER_MANAGER}),
    "payments": frozenset({Role.ADMIN, Role.MEMBER_MANAGER}),
    "dashboard": frozenset({Role.ADMIN}),
    "reports": frozenset({Role.ADMIN}),
    "users": frozenset({Role.ADMIN}),
    "sample_data": frozenset({Role.ADMIN}),
}


@dataclass(frozen=True)
class Identity:
    username: str
    role: Role


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in the users collection).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored bcrypt hash.
    """
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    try:
        return bcrypt.checkpw(secret, stored)
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# ---------- Login rate limiting ----------

class AttemptStore(Protocol):
    """Where failed login counts are kept. Swap for a shared cache when running several instances."""

    def get(self, key: str) -> tuple[int, float] | None: ...

    def set(self, key: str, count: int, reset_at: float) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryAttemptStore:
    def __init__(self):
        self._entries: dict[str, tuple[int, float]] = {}

    def get(self, key: str) -> tuple[int, float] | None:
        return self._entries.get(key)

    def set(self, key: str, count: int, reset_at: float) -> None:
        self._entries[key] = (count, reset_at)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RateLimiter:
    def __init__(
        self,
        store: AttemptStore | None = None,
        max_attempts: int = config.LOGIN_MAX_ATTEMPTS,
        window_seconds: float = config.LOGIN_WINDOW_MINUTES * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else InMemoryAttemptStore()
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock

    def _live_entry(self, key: str) -> tuple[int, float] | None:
        entry = self.store.get(key)
        if entry and self.clock() >= entry[1]:
            self.store.delete(key)
            return None
        return entry

    def check(self, key: str) -> int:
        """Raise RateLimited when `key` is locked out; otherwise return attempts left."""
        entry = self._live_entry(key)
        if entry is None:
            return self.max_attempts
        count, reset_at = entry
        if count >= self.max_attempts:
            raise RateLimited(retry_after=reset_at - self.clock())
        return self.max_attempts - count

    def record_failure(self, key: str) -> int:
        entry = self._live_entry(key)
        if entry is None:
            count, reset_at = 1, self.clock() + self.window_seconds
        else:
            count, reset_at = entry[0] + 1, entry[1]
        self.store.set(key, count, reset_at)
        return max(self.max_attempts - count, 0)

    def reset(self, key: str) -> None:
        self.store.delete(key)


# ---------- Users ----------

def get_user(username: str) -> dict | None:
    for user in db.load("users"):
        if user.get("username") == username:
            return user
    return None


def list_users() -> list[dict]:
    return [
        {"username": u.get("username"), "role": u.get("role"), "created_at": u.get("created_at", "")}
        for u in db.load("users")
    ]


def create_user(username: str, password: str, role: Role | str) -> None:
    errors: dict[str, str] = {}
    username = (username or "").strip()
    if not username:
        errors["username"] = "Username is required."
    elif get_user(username) is not None:
        errors["username"] = "Username already exists."
    if len(password or "") < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    try:
        role = Role(role)
    except ValueError:
        errors["role"] = "Unknown role."
    if errors:
        raise ValidationError(errors)

    users = db.load("users")
    users.append({
        "username": username,
        "password_hash": hash_password(password),
        "role": role.value,
        "created_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    })
    db.save("users", users)
    logger.info("Created user %s with role %s", username, role.value)


def change_password(username: str, new_password: str) -> None:
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError({"password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters."})
    users = db.load("users")
    for user in users:
        if user.get("username") == username:
            user["password_hash"] = hash_password(new_password)
            break
    else:
        raise Unauthorized("Unknown user.")
    db.save("users", users)
    db.clear_force_password_change()
    logger.info("Password changed for %s", username)


# ---------- Sessions ----------

def issue_token(username: str, role: Role | str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {
        "username": username,
        "role": Role(role).value,
        "iat": now,
        "exp": now + timedelta(hours=config.TOKEN_TTL_HOURS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def authorize(token: str | None) -> Identity:
    if not token:
        raise Unauthorized()
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected session token: %s", exc)
        raise Unauthorized("Your session has expired. Please log in again.") from exc
    try:
        return Identity(username=str(payload["username"]), role=Role(payload["role"]))
    except (KeyError, ValueError) as exc:
        raise Unauthorized() from exc


def require_role(identity: Identity, section: str) -> None:
    if identity.role not in SECTION_ROLES.get(section, frozenset()):
        logger.warning("%s (%s) denied access to %s", identity.username, identity.role.value, section)
        raise Forbidden()


def login(username: str, password: str, client_id: str = "unknown", limiter: RateLimiter | None = None) -> str:
    """
    Check credentials and return a session token.
    Raises RateLimited when `client_id` has too many recent failures, Unauthorized on bad credentials.
    """
    key = f"login_{client_id}"
    if limiter is not None:
        limiter.check(key)

    if not username or not password:
        raise Unauthorized("Username and password are required.")

    user = get_user(username)
    if user is None or not verify_password(password, user.get("password_hash", "")):
        remaining = limiter.record_failure(key) if limiter is not None else None
        logger.warning("Failed login for %r from %s (remaining: %s)", username, client_id, remaining)
        raise Unauthorized("Invalid username or password.")

    if limiter is not None:
        limiter.reset(key)
    logger.info("User %s logged in", username)
    return issue_token(username, user.get("role", Role.ADMIN.value))
