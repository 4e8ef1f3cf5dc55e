import secrets
from datetime import datetime, timedelta, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.core.config import get_settings
from careerpath.core.database import get_db
from careerpath.core.dependencies import get_current_user, require_role
from careerpath.core.errors import AppError
from careerpath.core.rate_limit import limiter
from careerpath.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from careerpath.models.audit_log import AuditLog
from careerpath.models.auth_token import EmailVerificationToken, PasswordResetToken
from careerpath.models.user import User
from careerpath.schemas.auth import (
    AuditLogResponse,
    ChangePasswordRequest,
    CreateUserRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UpdateProfileRequest,
    UserResponse,
)
from careerpath.services.audit import log_action
from careerpath.services.email import render as render_email
from careerpath.workers.notifications import send_email

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        is_active=user.is_active,
        email_verified=user.email_verified,
        last_login=user.last_login,
        created_at=user.created_at,
    )


def _tokens(user: User) -> TokenResponse:
    token_data = {"sub": str(user.id), "role": user.role}
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


async def _ensure_email_free(db: AsyncSession, email: str) -> None:
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise AppError("Email already registered", status_code=409, code="USER_EXISTS")


async def _send_verification(db: AsyncSession, user: User) -> None:
    settings = get_settings()
    token = secrets.token_urlsafe(32)
    db.add(
        EmailVerificationToken(
            user_id=user.id,
            token=token,
            expires_at=datetime.now(timezone.utc)
            + timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_HOURS),
        )
    )
    await db.flush()

    html = render_email(
        "email/email_verification.html",
        app_name=settings.APP_NAME,
        user_name=user.full_name,
        verify_url=f"{settings.FRONTEND_URL}/verify-email/{token}",
        valid_hours=settings.EMAIL_VERIFICATION_TOKEN_HOURS,
    )
    send_email.delay(user.email, f"Verify your email address - {settings.APP_NAME}", html)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
async def register(request: Request, data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    await _ensure_email_free(db, data.email)

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        role=data.role,
    )
    db.add(user)
    await db.flush()

    await _send_verification(db, user)

    await log_action(
        db,
        user_id=user.id,
        action="register",
        entity_type="user",
        entity_id=str(user.id),
        details={"role": user.role},
    )
    logger.info("user_registered", user_id=str(user.id), role=user.role)
    return _tokens(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("5/minute")
async def login(request: Request, data: LoginRequest, db: AsyncSession = Depends(get_db)):
    settings = get_settings()
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    now = datetime.now(timezone.utc)
    if user.is_locked(now):
        raise AppError(
            "Account temporarily locked after too many failed logins",
            status_code=423,
            code="ACCOUNT_LOCKED",
        )

    if not verify_password(data.password, user.password_hash):
        user.login_attempts = (user.login_attempts or 0) + 1
        if user.login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.lock_until = now + timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
            user.login_attempts = 0
            logger.warning("account_locked", user_id=str(user.id))
            await log_action(db, user_id=user.id, action="account_locked", entity_type="user", entity_id=str(user.id))
        # Persist the counter before the error response rolls the session back
        await db.commit()
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    user.login_attempts = 0
    user.lock_until = None
    user.last_login = now

    await log_action(
        db,
        user_id=user.id,
        action="login",
        entity_type="user",
        entity_id=str(user.id),
    )
    return _tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(data: RefreshRequest, db: AsyncSession = Depends(get_db)):
    payload = decode_token(data.refresh_token)
    if not payload or payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    token_data = {"sub": payload["sub"], "role": payload.get("role")}
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return _user_response(current_user)


@router.put("/me", response_model=UserResponse)
async def update_profile(
    data: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if data.full_name is not None:
        current_user.full_name = data.full_name
    if data.email is not None and data.email != current_user.email:
        await _ensure_email_free(db, data.email)
        current_user.email = data.email
        current_user.email_verified = False
        await _send_verification(db, current_user)

    return _user_response(current_user)


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not verify_password(data.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    current_user.password_hash = hash_password(data.new_password)

    await log_action(
        db,
        user_id=current_user.id,
        action="change_password",
        entity_type="user",
        entity_id=str(current_user.id),
    )

    return {"status": "ok"}


@router.post("/forgot-password")
@limiter.limit("3/minute")
async def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()

    if user is not None and user.is_active:
        settings = get_settings()
        token = secrets.token_urlsafe(32)
        db.add(
            PasswordResetToken(
                user_id=user.id,
                token=token,
                expires_at=datetime.now(timezone.utc)
                + timedelta(hours=settings.PASSWORD_RESET_TOKEN_HOURS),
            )
        )
        await db.flush()

        html = render_email(
            "email/password_reset.html",
            app_name=settings.APP_NAME,
            user_name=user.full_name,
            reset_url=f"{settings.FRONTEND_URL}/reset-password/{token}",
            valid_hours=settings.PASSWORD_RESET_TOKEN_HOURS,
        )
        send_email.delay(user.email, f"Reset your password - {settings.APP_NAME}", html)
        logger.info("password_reset_requested", user_id=str(user.id))

    # Same answer whether or not the address is registered
    return {
        "status": "ok",
        "message": "If this email is registered, a reset link has been sent",
    }


@router.post("/reset-password/{token}")
@limiter.limit("5/minute")
async def reset_password(
    request: Request,
    token: str,
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(PasswordResetToken).where(PasswordResetToken.token == token))
    reset_token = result.scalar_one_or_none()

    now = datetime.now(timezone.utc)
    if reset_token is None or not reset_token.is_usable(now):
        raise AppError("Invalid or expired reset link", status_code=400, code="INVALID_RESET_TOKEN")

    user = await db.get(User, reset_token.user_id)
    user.password_hash = hash_password(data.new_password)
    user.login_attempts = 0
    user.lock_until = None

    reset_token.used_at = now
    await db.flush()

    await log_action(
        db,
        user_id=user.id,
        action="password_reset",
        entity_type="user",
        entity_id=str(user.id),
    )

    return {"status": "ok"}


@router.get("/verify-email/{token}")
async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(EmailVerificationToken).where(EmailVerificationToken.token == token)
    )
    verification_token = result.scalar_one_or_none()

    now = datetime.now(timezone.utc)
    if verification_token is None or not verification_token.is_usable(now):
        raise AppError(
            "Invalid or expired verification link",
            status_code=400,
            code="INVALID_VERIFICATION_TOKEN",
        )

    user = await db.get(User, verification_token.user_id)
    user.email_verified = True

    verification_token.used_at = now
    await db.flush()

    await log_action(
        db,
        user_id=user.id,
        action="email_verified",
        entity_type="user",
        entity_id=str(user.id),
    )

    return {"status": "ok", "message": "Email verified"}


@router.post("/resend-verification")
@limiter.limit("3/minute")
async def resend_verification(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.email_verified:
        raise AppError("Email already verified", status_code=400, code="EMAIL_ALREADY_VERIFIED")

    # Older links stop working once a new one is sent
    result = await db.execute(
        select(EmailVerificationToken).where(
            EmailVerificationToken.user_id == current_user.id,
            EmailVerificationToken.used_at.is_(None),
        )
    )
    now = datetime.now(timezone.utc)
    for old_token in result.scalars().all():
        old_token.used_at = now

    await _send_verification(db, current_user)

    return {"status": "ok"}


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: CreateUserRequest,
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_email_free(db, data.email)

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        role=data.role,
    )
    db.add(user)
    await db.flush()

    await log_action(
        db,
        user_id=current_user.id,
        action="create_user",
        entity_type="user",
        entity_id=str(user.id),
        details={"role": data.role},
    )

    return _user_response(user)


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(User).order_by(User.created_at.desc()).offset(offset).limit(min(limit, 100))
    )
    return [_user_response(u) for u in result.scalars().all()]


@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def get_audit_logs(
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(AuditLog)
        .order_by(AuditLog.created_at.desc())
        .offset(offset)
        .limit(min(limit, 100))
    )
    return [
        AuditLogResponse(
            id=str(log.id),
            user_id=str(log.user_id) if log.user_id else None,
            action=log.action,
            entity_type=log.entity_type,
            entity_id=log.entity_id,
            details=log.details,
            created_at=log.created_at,
        )
        for log in result.scalars().all()
    ]
