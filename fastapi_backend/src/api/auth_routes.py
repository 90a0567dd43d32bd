from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response

from src.api.auth_utils import (
    SESSION_COOKIE,
    Auth,
    allow_anonymous,
    get_auth,
    get_current_session,
)
from src.api.schemas import (
    AuthResponse,
    OkResponse,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    SuccessResponse,
)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _set_session_cookie(response: Response, auth: Auth, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=int(auth.session_expires.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=auth.secure_cookies,
    )


# PUBLIC_INTERFACE
def build_auth_router(base_path: str = "/auth") -> APIRouter:
    """Routes for the email/password strategy, mounted under base_path."""
    router = APIRouter(prefix=base_path, tags=["Auth"])

    @router.post("/sign-up/email", response_model=AuthResponse, summary="Sign up with email")
    @allow_anonymous
    def sign_up_email(
        payload: SignUpRequest,
        request: Request,
        response: Response,
        auth: Auth = Depends(get_auth),
    ) -> Dict[str, Any]:
        """Create a user and return a session token."""
        token, user = auth.sign_up(
            email=payload.email,
            name=payload.name,
            password=payload.password,
            image=payload.image,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        _set_session_cookie(response, auth, token)
        return {"token": token, "user": user}

    @router.post("/sign-in/email", response_model=AuthResponse, summary="Sign in with email")
    @allow_anonymous
    def sign_in_email(
        payload: SignInRequest,
        request: Request,
        response: Response,
        auth: Auth = Depends(get_auth),
    ) -> Dict[str, Any]:
        """Check credentials and return a session token."""
        token, user = auth.sign_in(
            email=payload.email,
            password=payload.password,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        _set_session_cookie(response, auth, token)
        return {"token": token, "user": user}

    @router.post("/sign-out", response_model=SuccessResponse, summary="Sign out")
    def sign_out(
        response: Response,
        current: Dict[str, Any] = Depends(get_current_session),
        auth: Auth = Depends(get_auth),
    ) -> Dict[str, Any]:
        """Close the current session."""
        auth.sign_out(current["session"]["id"])
        response.delete_cookie(SESSION_COOKIE)
        return {"success": True}

    @router.get("/get-session", response_model=SessionResponse, summary="Get current session")
    def get_session(current: Dict[str, Any] = Depends(get_current_session)) -> Dict[str, Any]:
        return current

    @router.get("/ok", response_model=OkResponse, summary="Auth liveness")
    @allow_anonymous
    def ok() -> Dict[str, Any]:
        return {"ok": True}

    return router
