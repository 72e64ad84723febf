# app/utils/security.py

"""
Хеширование паролей и JWT.
passlib с sha256_crypt для паролей, PyJWT (HS256) для access токенов.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jwt import encode, decode
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["sha256_crypt"], deprecated="auto")

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, secret_key: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Собирает JWT из payload (например {"sub": "user@mail.fr"}).
    Токен живёт 15 минут, если не передан expires_delta.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return encode(to_encode, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> dict:
    """Бросает jwt.ExpiredSignatureError / jwt.InvalidTokenError."""
    return decode(token, secret_key, algorithms=[ALGORITHM])
