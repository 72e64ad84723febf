# app/routes/auth.py

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jwt import ExpiredSignatureError, InvalidTokenError

from app.config import settings
from app.models.user import User
from app.schemas.user import (
    ForgotPasswordRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
)
from app.services.profile import (
    authenticate_user,
    forgot_password_service,
    read_user_by_email,
    register_user_service,
    reset_password_service,
    verify_reset_token_service,
)
from app.utils.rate_limit import enforce_rate_limit, get_client_ip
from app.utils.security import create_access_token, decode_access_token

router = APIRouter()

# ────────────── JWT ──────────────
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

CREDENTIALS_HEADERS = {"WWW-Authenticate": "Bearer"}


async def _user_from_token(token: str, request: Request) -> User:
    log = request.app.state.log
    try:
        payload = decode_access_token(token, settings.AUTH_SECRET_KEY)
    except ExpiredSignatureError:
        await log.log_warning("auth", "Token expired")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired",
                            headers=CREDENTIALS_HEADERS)
    except InvalidTokenError:
        await log.log_warning("auth", "Invalid token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalid",
                            headers=CREDENTIALS_HEADERS)

    email = payload.get("sub")
    if email is None:
        await log.log_error("auth", "Token without subject")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token",
                            headers=CREDENTIALS_HEADERS)

    user = await read_user_by_email(email, request)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found",
                            headers=CREDENTIALS_HEADERS)
    return user


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> User:
    """
    Находит User по bearer токену.

    - 401 если токена нет, он истёк, невалиден или пользователя нет
    """
    return await _user_from_token(token, request)


async def get_optional_user(request: Request, token: Optional[str] = Depends(optional_oauth2_scheme)) -> Optional[User]:
    """Как get_current_user, но для публичных роутов: без токена аноним."""
    if not token:
        return None
    return await _user_from_token(token, request)


async def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


# ────────────── TOKEN ──────────────
@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Get a JWT access token",
    responses={
        200: {
            "description": "Token issued",
            "content": {
                "application/json": {
                    "example": {
                        "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                        "token_type": "bearer",
                        "user": {"id": 1, "email": "client@mail.fr", "name": "Claire", "role": "USER"},
                    }
                }
            },
        },
        400: {"description": "Missing username or password"},
        401: {"description": "Wrong email or password"},
        429: {"description": "Too many attempts"},
        500: {"description": "Internal server error"},
    },
)
async def login_for_access_token(request: Request, form_data: OAuth2PasswordRequestForm = Depends()):
    """
    Поля формы `username` (email аккаунта) и `password`.
    Возвращает bearer токен и пользователя.
    """
    log = request.app.state.log
    await enforce_rate_limit(request, get_client_ip(request), "auth")

    user = await authenticate_user(form_data.username, form_data.password, request)
    if user is None:
        await log.log_warning("auth", "Failed login", {"username": form_data.username})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Wrong email or password",
                            headers=CREDENTIALS_HEADERS)

    access_token = create_access_token(
        data={"sub": user.email, "role": user.role},
        secret_key=settings.AUTH_SECRET_KEY,
        expires_delta=timedelta(minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES),
    )
    await log.log_info("auth", "User logged in", {"id": user.id})
    return {"access_token": access_token, "token_type": "bearer", "user": user}


# ────────────── REGISTER ──────────────
@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a customer account",
    responses={
        201: {"description": "Account created"},
        400: {"description": "Invalid data (weak password, passwords differ...)"},
        409: {"description": "Email already registered"},
        429: {"description": "Too many attempts"},
        500: {"description": "Internal server error"},
    },
)
async def register_user(payload: RegisterRequest, request: Request):
    """Новые аккаунты всегда получают роль USER."""
    await enforce_rate_limit(request, get_client_ip(request), "auth")
    try:
        return await register_user_service(payload, request)
    except Exception as e:
        await request.app.state.log.log_error("auth", f"Registration failed: {e}", {"email": payload.email})
        raise


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current user",
    responses={401: {"description": "Missing or invalid token"}},
)
async def read_me(current_user: User = Depends(get_current_user)):
    return current_user


# ────────────── Сброс пароля ──────────────
@router.post(
    "/forgot-password",
    status_code=status.HTTP_200_OK,
    summary="Email a password reset link",
    responses={
        200: {"description": "Same answer whether the account exists or not"},
        400: {"description": "Invalid email"},
        429: {"description": "Too many attempts"},
    },
)
async def forgot_password(payload: ForgotPasswordRequest, request: Request):
    await enforce_rate_limit(request, get_client_ip(request), "auth")
    try:
        return await forgot_password_service(payload.email, request)
    except Exception as e:
        await request.app.state.log.log_error("auth", f"Password reset request failed: {e}", {"email": payload.email})
        raise


@router.get(
    "/verify-reset-token",
    status_code=status.HTTP_200_OK,
    summary="Check a password reset token",
    responses={200: {"description": "{valid: bool}, expired tokens are deleted"}},
)
async def verify_reset_token(request: Request, token: str = ""):
    if not token:
        return {"valid": False}
    return await verify_reset_token_service(token, request)


@router.post(
    "/reset-password",
    status_code=status.HTTP_200_OK,
    summary="Set a new password with a reset token",
    responses={
        200: {"description": "Password updated, token deleted"},
        400: {"description": "Weak password, unknown or expired token"},
        404: {"description": "Account no longer exists"},
        429: {"description": "Too many attempts"},
    },
)
async def reset_password(payload: ResetPasswordRequest, request: Request):
    await enforce_rate_limit(request, get_client_ip(request), "auth")
    try:
        return await reset_password_service(payload, request)
    except Exception as e:
        await request.app.state.log.log_error("auth", f"Password reset failed: {e}")
        raise
