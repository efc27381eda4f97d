# smartcare_auth/core/security.py

import hashlib
import hmac
from datetime import datetime, timedelta

import jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import OAuth2PasswordBearer

from smartcare_auth.core.config import settings

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60


# -----------------------------
# CREATE JWT TOKEN
# -----------------------------
def create_access_token(data: dict):
    to_encode = data.copy()

    expire = datetime.utcnow() + timedelta(
        minutes=ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode.update({"exp": expire})

    token = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return token


# -----------------------------
# VERIFY / DECODE JWT TOKEN
# -----------------------------
def decode_access_token(token: str):
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )

    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )


# Tokens are issued by the main auth service with the shared SECRET_KEY
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_user(token: str = Depends(oauth2_scheme)):
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing"
        )

    decoded = decode_access_token(token)

    if "id" not in decoded:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload"
        )

    return {
        "id": str(decoded["id"]),
        "email": decoded.get("email"),
        "role": decoded.get("role"),
    }


# -----------------------------
# APPROVAL LINK TOKENS
# -----------------------------
def sign_approval_link(request_id: str, nonce: str) -> str:
    """
    HMAC over the request id and the per-request nonce.
    A re-created request gets a new nonce, so links from an
    earlier email stop working.
    """
    message = f"{request_id}:{nonce}".encode()
    return hmac.new(settings.SECRET_KEY.encode(), message, hashlib.sha256).hexdigest()


def verify_approval_link(request_id: str, nonce: str | None, token: str | None) -> bool:
    if not nonce or not token:
        return False
    expected = sign_approval_link(request_id, nonce)
    return hmac.compare_digest(expected, token)
