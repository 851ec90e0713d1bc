from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.config import settings
from app.context import CallerContext
from app.database import get_db
from app.dependencies import get_admission, get_caller_context, limit_general, require_caller
from app.middleware.rate_limit import AdmissionControl
from app.schemas.secret import (
    SecretCreate,
    SecretCreateResponse,
    SecretDeleteResponse,
    SecretListItem,
    SecretListResponse,
    SecretRequirementsResponse,
    SecretUpdate,
    SecretUpdateResponse,
    SecretViewRequest,
    SecretViewResponse,
)
from app.services.secret_service import (
    check_requirements,
    create_secret,
    delete_secret,
    disclose_secret,
    list_secrets,
    update_secret,
    utcnow,
)

router = APIRouter()


@router.post("/secrets", response_model=SecretCreateResponse, status_code=201)
def create_new_secret(
    secret_data: SecretCreate,
    ctx: CallerContext = Depends(get_caller_context),
    admission: AdmissionControl = Depends(get_admission),
    db: Session = Depends(get_db),
):
    """
    Create a new secret and return its public slug.

    Anonymous callers may create secrets; signed-in callers become the owner.
    """
    try:
        secret = create_secret(
            db=db,
            admission=admission,
            ctx=ctx,
            content=secret_data.content,
            title=secret_data.title,
            password=secret_data.password,
            expires_at=secret_data.expires_at,
            is_one_time_access=secret_data.is_one_time_access,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SecretCreateResponse(
        id=secret.id,
        slug=secret.slug,
        title=secret.title,
        expires_at=secret.expires_at,
        is_one_time_access=secret.is_one_time_access,
        created_at=secret.created_at,
    )


@router.get(
    "/secrets/{slug}/requirements",
    response_model=SecretRequirementsResponse,
    dependencies=[Depends(limit_general)],
)
def get_requirements(slug: str, db: Session = Depends(get_db)):
    """
    Tell the viewer what it needs before disclosing a secret.

    Does not consume one-time secrets.
    """
    secret = check_requirements(db, slug)
    return SecretRequirementsResponse(
        id=secret.id,
        title=secret.title,
        requires_password=secret.has_password,
        expires_at=secret.expires_at,
        is_one_time_access=secret.is_one_time_access,
        created_at=secret.created_at,
    )


@router.post("/secrets/{slug}/view", response_model=SecretViewResponse)
def view_secret(
    slug: str,
    view_data: SecretViewRequest | None = None,
    ctx: CallerContext = Depends(get_caller_context),
    admission: AdmissionControl = Depends(get_admission),
    db: Session = Depends(get_db),
):
    """
    Disclose a secret's content.

    For one-time secrets this is the only successful view; every later
    request answers 404.
    """
    disclosed = disclose_secret(
        db=db,
        admission=admission,
        ctx=ctx,
        slug=slug,
        password=view_data.password if view_data else None,
    )
    return SecretViewResponse(
        id=disclosed.id,
        title=disclosed.title,
        content=disclosed.content,
        expires_at=disclosed.expires_at,
        is_one_time_access=disclosed.is_one_time_access,
        created_at=disclosed.created_at,
    )


@router.get("/secrets", response_model=SecretListResponse, dependencies=[Depends(limit_general)])
def list_my_secrets(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    search: str | None = Query(None, max_length=200),
    ctx: CallerContext = Depends(require_caller),
    db: Session = Depends(get_db),
):
    """List the caller's secrets, newest first."""
    result = list_secrets(db, ctx.identity.user_id, page=page, page_size=page_size, search=search)
    now = utcnow()

    return SecretListResponse(
        secrets=[
            SecretListItem(
                id=secret.id,
                slug=secret.slug,
                title=secret.title,
                expires_at=secret.expires_at,
                is_one_time_access=secret.is_one_time_access,
                has_been_accessed=secret.has_been_accessed,
                status=secret.status(now),
                access_count=access_count,
                has_password=secret.has_password,
                created_at=secret.created_at,
            )
            for secret, access_count in result.rows
        ],
        total=result.total,
        pages=result.pages,
        page=result.page,
        page_size=result.page_size,
    )


@router.patch(
    "/secrets/{secret_id}",
    response_model=SecretUpdateResponse,
    dependencies=[Depends(limit_general)],
)
def edit_secret(
    secret_id: str,
    edit_data: SecretUpdate,
    ctx: CallerContext = Depends(require_caller),
    db: Session = Depends(get_db),
):
    """Change the title and/or expiration of one of the caller's secrets."""
    changes = edit_data.model_dump(exclude_unset=True)
    try:
        secret = update_secret(db, secret_id, ctx.identity.user_id, **changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SecretUpdateResponse(
        id=secret.id,
        title=secret.title,
        expires_at=secret.expires_at,
        updated_at=secret.updated_at,
    )


@router.delete(
    "/secrets/{secret_id}",
    response_model=SecretDeleteResponse,
    dependencies=[Depends(limit_general)],
)
def remove_secret(
    secret_id: str,
    ctx: CallerContext = Depends(require_caller),
    db: Session = Depends(get_db),
):
    """Permanently delete one of the caller's secrets."""
    delete_secret(db, secret_id, ctx.identity.user_id)
    return SecretDeleteResponse(success=True)
