from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.context import CallerContext
from app.database import get_db
from app.dependencies import get_admission, get_caller_context, limit_general, require_caller
from app.middleware.rate_limit import AdmissionControl
from app.schemas.auth import AuthResponse, LoginRequest, MeResponse, RegisterRequest, UserResponse
from app.services.account_service import get_user, login_user, register_user

router = APIRouter()


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    register_data: RegisterRequest,
    ctx: CallerContext = Depends(get_caller_context),
    admission: AdmissionControl = Depends(get_admission),
    db: Session = Depends(get_db),
):
    """Create an account; the response carries a 7-day identity token."""
    user, token = register_user(
        db=db,
        admission=admission,
        ctx=ctx,
        name=register_data.name,
        email=register_data.email,
        password=register_data.password,
    )
    return AuthResponse(user=UserResponse(id=user.id, name=user.name, email=user.email), token=token)


@router.post("/auth/login", response_model=AuthResponse)
def login(
    login_data: LoginRequest,
    ctx: CallerContext = Depends(get_caller_context),
    admission: AdmissionControl = Depends(get_admission),
    db: Session = Depends(get_db),
):
    user, token = login_user(
        db=db,
        admission=admission,
        ctx=ctx,
        email=login_data.email,
        password=login_data.password,
    )
    return AuthResponse(user=UserResponse(id=user.id, name=user.name, email=user.email), token=token)


@router.get("/auth/me", response_model=MeResponse, dependencies=[Depends(limit_general)])
def me(
    ctx: CallerContext = Depends(require_caller),
    db: Session = Depends(get_db),
):
    user = get_user(db, ctx.identity.user_id)
    return MeResponse(id=user.id, name=user.name, email=user.email, created_at=user.created_at)
