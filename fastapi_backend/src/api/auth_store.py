"""
Storage providers for users and sessions.

`PostgresAuthStore` is the production provider; `InMemoryAuthStore` backs
development runs and tests.
"""

import logging
import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional, Protocol

from psycopg2 import errors as pg_errors

from src.api.db import PostgresPool

logger = logging.getLogger(__name__)


class DuplicateEmailError(Exception):
    """Raised when a user with the same email already exists."""

    def __init__(self, email: str):
        super().__init__(f"User already exists: {email}")
        self.email = email


class AuthStore(Protocol):
    """Interface the auth component uses to persist users and sessions."""

    def ensure_schema(self) -> None:
        ...

    def create_user(
        self, email: str, name: str, password_hash: str, image: Optional[str] = None
    ) -> Dict[str, Any]:
        ...

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        ...

    def get_user(self, user_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        ...

    def create_session(
        self,
        user_id: uuid.UUID,
        expires_at: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    def get_session(self, session_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        ...

    def delete_session(self, session_id: uuid.UUID) -> bool:
        ...

    def close(self) -> None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


SCHEMA_SQL = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        email_verified BOOLEAN NOT NULL DEFAULT FALSE,
        image TEXT,
        password_hash TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id UUID PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        expires_at TIMESTAMPTZ NOT NULL,
        ip_address TEXT,
        user_agent TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS sessions_user_id_idx ON sessions (user_id)",
)

_USER_COLUMNS = "id, email, name, email_verified, image, password_hash, created_at, updated_at"
_SESSION_COLUMNS = "id, user_id, expires_at, ip_address, user_agent, created_at"


def _with_uuid_ids(row: Optional[Dict[str, Any]], *keys: str) -> Optional[Dict[str, Any]]:
    # psycopg2 returns uuid columns as str unless register_uuid() is called.
    if row is None:
        return None
    for key in keys:
        if row.get(key) is not None and not isinstance(row[key], uuid.UUID):
            row[key] = uuid.UUID(str(row[key]))
    return row


class PostgresAuthStore:
    """Auth storage on PostgreSQL through a psycopg2 connection pool."""

    def __init__(self, pool: PostgresPool):
        self.pool = pool

    def ensure_schema(self) -> None:
        for statement in SCHEMA_SQL:
            self.pool.execute(statement)
        logger.info("Auth schema ready")

    def create_user(
        self, email: str, name: str, password_hash: str, image: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            row = self.pool.execute_returning_one(
                f"""
                INSERT INTO users (id, email, name, email_verified, image, password_hash)
                VALUES (%s, %s, %s, FALSE, %s, %s)
                RETURNING {_USER_COLUMNS}
                """,
                [str(uuid.uuid4()), email, name, image, password_hash],
            )
        except pg_errors.UniqueViolation:
            raise DuplicateEmailError(email)
        return _with_uuid_ids(row, "id")

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        row = self.pool.fetch_one(f"SELECT {_USER_COLUMNS} FROM users WHERE email=%s", [email])
        return _with_uuid_ids(row, "id")

    def get_user(self, user_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        row = self.pool.fetch_one(f"SELECT {_USER_COLUMNS} FROM users WHERE id=%s", [str(user_id)])
        return _with_uuid_ids(row, "id")

    def create_session(
        self,
        user_id: uuid.UUID,
        expires_at: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        row = self.pool.execute_returning_one(
            f"""
            INSERT INTO sessions (id, user_id, expires_at, ip_address, user_agent)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_SESSION_COLUMNS}
            """,
            [str(uuid.uuid4()), str(user_id), expires_at, ip_address, user_agent],
        )
        return _with_uuid_ids(row, "id", "user_id")

    def get_session(self, session_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        row = self.pool.fetch_one(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id=%s", [str(session_id)]
        )
        return _with_uuid_ids(row, "id", "user_id")

    def delete_session(self, session_id: uuid.UUID) -> bool:
        return self.pool.execute("DELETE FROM sessions WHERE id=%s", [str(session_id)]) > 0

    def close(self) -> None:
        self.pool.close()


class InMemoryAuthStore:
    """Simple in-memory auth storage for development and tests."""

    def __init__(self):
        self.users: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.sessions: Dict[uuid.UUID, Dict[str, Any]] = {}
        self._lock = Lock()

    def ensure_schema(self) -> None:
        return None

    def create_user(
        self, email: str, name: str, password_hash: str, image: Optional[str] = None
    ) -> Dict[str, Any]:
        with self._lock:
            if any(u["email"] == email for u in self.users.values()):
                raise DuplicateEmailError(email)
            now = _now()
            user = {
                "id": uuid.uuid4(),
                "email": email,
                "name": name,
                "email_verified": False,
                "image": image,
                "password_hash": password_hash,
                "created_at": now,
                "updated_at": now,
            }
            self.users[user["id"]] = user
            return dict(user)

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for user in self.users.values():
                if user["email"] == email:
                    return dict(user)
        return None

    def get_user(self, user_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        with self._lock:
            user = self.users.get(user_id)
            return dict(user) if user else None

    def create_session(
        self,
        user_id: uuid.UUID,
        expires_at: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            session = {
                "id": uuid.uuid4(),
                "user_id": user_id,
                "expires_at": expires_at,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "created_at": _now(),
            }
            self.sessions[session["id"]] = session
            return dict(session)

    def get_session(self, session_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        with self._lock:
            session = self.sessions.get(session_id)
            return dict(session) if session else None

    def delete_session(self, session_id: uuid.UUID) -> bool:
        with self._lock:
            return self.sessions.pop(session_id, None) is not None

    def close(self) -> None:
        return None
