from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import bcrypt
import hashlib
import os
from dotenv import load_dotenv
from pathlib import Path
from database import get_db
from models import Profile

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

WEAK_SECRETS = {'default_secret_key', 'changeme', 'change_me', 'secret', 'jwt_secret', 'password', 'admin123'}


def _load_jwt_secret() -> str:
    secret = os.environ.get('JWT_SECRET_KEY')
    if not secret:
        raise RuntimeError('JWT_SECRET_KEY is required and must be set in environment')
    if len(secret) < 32 or secret.strip().lower() in WEAK_SECRETS:
        raise RuntimeError('JWT_SECRET_KEY is too weak; use a random secret with at least 32 characters')
    return secret


SECRET_KEY = _load_jwt_secret()
ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get('ACCESS_TOKEN_EXPIRE_MINUTES', 30))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.environ.get('REFRESH_TOKEN_EXPIRE_DAYS', 7))

security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _password_digest(password: str) -> bytes:
    # bcrypt truncates at 72 bytes, so hash a fixed-size SHA-256 digest instead
    return hashlib.sha256(str(password).encode('utf-8')).digest()


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        # Offline profiles have no credential and can never sign in.
        return False
    try:
        return bcrypt.checkpw(_password_digest(plain_password), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_password_digest(password), bcrypt.gensalt()).decode('utf-8')


def _encode_token(data: dict, token_type: str, lifetime: timedelta) -> str:
    claims = dict(data)
    claims.update({"exp": datetime.now(timezone.utc) + lifetime, "type": token_type})
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    return _encode_token(data, "access", expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))


def create_refresh_token(data: dict) -> str:
    return _encode_token(data, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise _credentials_error()


def issue_tokens(profile: Profile) -> dict:
    claims = {"sub": str(profile.id), "role": profile.role.value}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
        "token_type": "bearer",
    }


def profile_from_token(db: Session, token: str, token_type: str = "access") -> Profile:
    """Resolve a bearer token of the given type to its profile, or raise 401."""
    payload = decode_token(token)
    if payload.get("type") != token_type:
        raise _credentials_error("Invalid token type")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise _credentials_error()

    profile = db.query(Profile).filter(Profile.id == int(subject)).first()
    if profile is None:
        raise _credentials_error("User not found")
    return profile


async def get_current_profile(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> Profile:
    return profile_from_token(db, credentials.credentials)
