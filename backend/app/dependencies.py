"""FastAPI dependencies shared by the routers."""

from fastapi import Depends, Request

from app.context import CallerContext
from app.errors import UnauthorizedError
from app.middleware.rate_limit import GENERAL_API, AdmissionControl, get_real_client_ip
from app.services.token_service import verify_token

AUTH_COOKIE = "auth-token"


def extract_bearer_token(request: Request) -> str | None:
    """Token from the Authorization header, falling back to the auth cookie."""
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(AUTH_COOKIE)


def get_admission(request: Request) -> AdmissionControl:
    return request.app.state.admission


def get_caller_context(request: Request) -> CallerContext:
    """Build the caller context; a bad or expired token just means anonymous."""
    return CallerContext(
        address=get_real_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        identity=verify_token(extract_bearer_token(request)),
    )


def require_caller(ctx: CallerContext = Depends(get_caller_context)) -> CallerContext:
    if ctx.identity is None:
        raise UnauthorizedError("Not authenticated")
    return ctx


def limit_general(
    ctx: CallerContext = Depends(get_caller_context),
    admission: AdmissionControl = Depends(get_admission),
) -> None:
    admission.enforce(ctx.address, GENERAL_API)
