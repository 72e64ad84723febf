# app/services/profile.py

import secrets
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select

from app.config import settings
from app.models.password_reset import PasswordResetToken
from app.models.user import User
from app.schemas.user import RegisterRequest, ResetPasswordRequest
from app.services.email import send_password_reset_email
from app.utils.database import utcnow
from app.utils.security import hash_password, verify_password


async def read_user_by_email(email: str, request: Request) -> Optional[User]:
    db = request.state.db
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def register_user_service(payload: RegisterRequest, request: Request) -> User:
    """
    Создание аккаунта USER. Пароль хешируется перед сохранением,
    занятый email даёт 409.
    """
    db = request.state.db
    log = request.app.state.log

    if await read_user_by_email(payload.email, request) is not None:
        await log.log_warning("user", "Email already registered", {"email": payload.email})
        raise HTTPException(status_code=409, detail="An account already exists with this email")

    user = User(
        email=payload.email,
        name=payload.name.strip(),
        password=hash_password(payload.password),
        role="USER",
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="An account already exists with this email")
    await db.refresh(user)

    await log.log_info("user", "User registered", {"id": user.id, "email": user.email})
    return user


async def authenticate_user(email: str, password: str, request: Request) -> Optional[User]:
    user = await read_user_by_email(email, request)
    if user is None or not verify_password(password, user.password or ""):
        return None
    return user


# ────────────── Сброс пароля ──────────────
RESET_TOKEN_EXPIRY_MINUTES = 60
RESET_REQUESTED_MESSAGE = "If an account exists for this email, a reset link has been sent"


async def _read_reset_token(token: str, request: Request) -> Optional[PasswordResetToken]:
    result = await request.state.db.execute(select(PasswordResetToken).where(PasswordResetToken.token == token))
    return result.scalar_one_or_none()


async def forgot_password_service(email: str, request: Request) -> dict:
    """
    Создаёт токен сброса на RESET_TOKEN_EXPIRY_MINUTES и отправляет ссылку письмом.
    Ответ одинаковый, есть аккаунт или нет.
    """
    db = request.state.db
    log = request.app.state.log

    user = await read_user_by_email(email, request)
    if user is None or not user.password:
        await log.log_info("user", "Password reset for unknown account", {"email": email})
        return {"message": RESET_REQUESTED_MESSAGE}

    await db.execute(delete(PasswordResetToken).where(PasswordResetToken.email == user.email))
    reset = PasswordResetToken(
        email=user.email,
        token=secrets.token_hex(32),
        expires_at=utcnow() + timedelta(minutes=RESET_TOKEN_EXPIRY_MINUTES),
    )
    db.add(reset)
    await db.commit()

    reset_url = f"{settings.BASE_URL}/auth/reset-password/{reset.token}"
    outcome = await send_password_reset_email(user.email, user.name, reset_url, RESET_TOKEN_EXPIRY_MINUTES,
                                              request, user_id=user.id)
    await log.log_info("user", "Password reset requested", {"id": user.id, "email_sent": outcome["success"]})
    return {"message": RESET_REQUESTED_MESSAGE}


async def verify_reset_token_service(token: str, request: Request) -> dict:
    reset = await _read_reset_token(token, request)
    if reset is None:
        return {"valid": False}
    if reset.expires_at < utcnow():
        await request.state.db.delete(reset)
        await request.state.db.commit()
        return {"valid": False}
    return {"valid": True}


async def reset_password_service(payload: ResetPasswordRequest, request: Request) -> dict:
    """
    Ставит новый пароль и удаляет токен.
    400 неизвестный или истёкший токен, 404 если аккаунта уже нет.
    """
    db = request.state.db
    log = request.app.state.log

    reset = await _read_reset_token(payload.token, request)
    if reset is None:
        raise HTTPException(status_code=400, detail="Invalid or expired reset link")
    if reset.expires_at < utcnow():
        await db.delete(reset)
        await db.commit()
        raise HTTPException(status_code=400, detail="This reset link has expired, please request a new one")

    user = await read_user_by_email(reset.email, request)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    user.password = hash_password(payload.password)
    await db.delete(reset)
    await db.commit()

    await log.log_info("user", "Password reset", {"id": user.id})
    return {"message": "Password updated"}
