import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from src.api.auth_store import AuthStore, DuplicateEmailError
from src.api.config import AppConfig

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
_bearer = HTTPBearer(auto_error=False)

F = TypeVar("F", bound=Callable[..., Any])


# PUBLIC_INTERFACE
def hash_password(password: str) -> str:
    """Hash a plaintext password."""
    return _pwd_context.hash(password)


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    """Verify a plaintext password against a stored hash."""
    return _pwd_context.verify(password, password_hash)


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Strip credential columns from a user row."""
    return {k: v for k, v in user.items() if k != "password_hash"}


class Auth:
    """
    Email/password authentication over a pluggable storage provider.

    Sessions live in the store; the token handed to the client is a JWT whose
    `sid` claim names the session row, so deleting the row revokes the token.
    """

    def __init__(
        self,
        store: AuthStore,
        jwt_secret: Optional[str],
        jwt_algorithm: str = "HS256",
        session_expires_minutes: int = 10080,
        base_path: str = "/auth",
        secure_cookies: bool = False,
    ):
        self.store = store
        self.base_path = base_path
        self.session_expires = timedelta(minutes=session_expires_minutes)
        self.secure_cookies = secure_cookies
        if not jwt_secret:
            # Required for security; do not default.
            raise RuntimeError(
                "Missing required environment variable 'JWT_SECRET'. "
                "Set it before starting the service."
            )
        self._jwt_secret = jwt_secret
        self._jwt_algorithm = jwt_algorithm

    @classmethod
    def from_config(cls, config: AppConfig, store: AuthStore) -> "Auth":
        return cls(
            store=store,
            jwt_secret=config.jwt_secret,
            jwt_algorithm=config.jwt_algorithm,
            session_expires_minutes=config.session_expires_minutes,
            base_path=config.auth_base_path,
            secure_cookies=config.environment == "production",
        )

    def _issue_token(self, session: Dict[str, Any]) -> str:
        payload = {
            "sub": str(session["user_id"]),
            "sid": str(session["id"]),
            "exp": session["expires_at"],
        }
        return jwt.encode(payload, self._jwt_secret, algorithm=self._jwt_algorithm)

    def _start_session(
        self, user: Dict[str, Any], ip_address: Optional[str], user_agent: Optional[str]
    ) -> Tuple[str, Dict[str, Any]]:
        expires_at = datetime.now(timezone.utc) + self.session_expires
        session = self.store.create_session(
            user["id"], expires_at, ip_address=ip_address, user_agent=user_agent
        )
        return self._issue_token(session), session

    # PUBLIC_INTERFACE
    def sign_up(
        self,
        email: str,
        name: str,
        password: str,
        image: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[str, Dict[str, Any]]:
        """Create a user, open a session for it, and return (token, user)."""
        email = email.lower()
        if self.store.get_user_by_email(email):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
        try:
            user = self.store.create_user(email, name, hash_password(password), image=image)
        except DuplicateEmailError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

        token, _ = self._start_session(user, ip_address, user_agent)
        logger.info("User signed up: %s", user["id"])
        return token, public_user(user)

    # PUBLIC_INTERFACE
    def sign_in(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[str, Dict[str, Any]]:
        """Check credentials, open a session, and return (token, user)."""
        user = self.store.get_user_by_email(email.lower())
        if not user or not verify_password(password, user["password_hash"]):
            logger.warning("Failed sign-in attempt")
            raise _unauthorized("Invalid email or password")

        token, _ = self._start_session(user, ip_address, user_agent)
        logger.info("User signed in: %s", user["id"])
        return token, public_user(user)

    def _drop_expired(self, token: str) -> None:
        # Signature is still checked; only the exp claim is skipped.
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=[self._jwt_algorithm],
                options={"verify_exp": False},
            )
            session_id = UUID(str(payload.get("sid")))
        except (JWTError, ValueError):
            return
        if self.store.delete_session(session_id):
            logger.info("Expired session removed: %s", session_id)

    # PUBLIC_INTERFACE
    def resolve(self, token: str) -> Dict[str, Any]:
        """Return {"session", "user"} for a valid token, else raise 401."""
        try:
            payload = jwt.decode(token, self._jwt_secret, algorithms=[self._jwt_algorithm])
            session_id = UUID(str(payload.get("sid")))
            user_id = UUID(str(payload.get("sub")))
        except ExpiredSignatureError:
            self._drop_expired(token)
            raise _unauthorized("Session expired")
        except (JWTError, ValueError):
            raise _unauthorized("Invalid token")

        session = self.store.get_session(session_id)
        if not session or session["user_id"] != user_id:
            raise _unauthorized("Session not found")
        if session["expires_at"] <= datetime.now(timezone.utc):
            self.store.delete_session(session_id)
            raise _unauthorized("Session expired")

        user = self.store.get_user(user_id)
        if not user:
            raise _unauthorized("User not found")
        return {"session": session, "user": public_user(user)}

    # PUBLIC_INTERFACE
    def sign_out(self, session_id: UUID) -> bool:
        """Delete a session. Returns False when it was already gone."""
        removed = self.store.delete_session(session_id)
        logger.info("Session closed: %s", session_id)
        return removed


# PUBLIC_INTERFACE
def allow_anonymous(endpoint: F) -> F:
    """Mark a route handler as reachable without a session."""
    endpoint.allow_anonymous = True  # type: ignore[attr-defined]
    return endpoint


def _is_anonymous_route(request: Request) -> bool:
    route = request.scope.get("route")
    endpoint = getattr(route, "endpoint", None) or request.scope.get("endpoint")
    return bool(getattr(endpoint, "allow_anonymous", False))


# PUBLIC_INTERFACE
def get_auth(request: Request) -> Auth:
    """Dependency returning the app's Auth instance."""
    return request.app.state.auth


# PUBLIC_INTERFACE
def require_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Dict[str, Any]]:
    """
    Global guard: every route needs a valid session unless its handler is
    marked with @allow_anonymous. The resolved session is kept on
    request.state for handlers.
    """
    if _is_anonymous_route(request):
        return None

    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE)
    if not token:
        raise _unauthorized()

    current = get_auth(request).resolve(token)
    request.state.auth_session = current
    return current


# PUBLIC_INTERFACE
def get_current_session(request: Request) -> Dict[str, Any]:
    """Dependency returning {"session", "user"} resolved by the guard."""
    current = getattr(request.state, "auth_session", None)
    if current is None:
        raise _unauthorized()
    return current
