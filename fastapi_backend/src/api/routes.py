from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from src.api.auth_utils import allow_anonymous
from src.api.errors import utc_timestamp
from src.api.schemas import HealthStatus

GREETING = "Hello World!"

router = APIRouter()


@router.get("/", response_class=PlainTextResponse, tags=["App"], summary="Greeting")
@allow_anonymous
def get_hello() -> str:
    return GREETING


@router.get("/health", response_model=HealthStatus, tags=["Health"], summary="Health check")
@allow_anonymous
def health_check() -> HealthStatus:
    """Health check used by load balancers and monitoring."""
    return HealthStatus(status="ok", timestamp=utc_timestamp())
