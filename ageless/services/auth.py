from datetime import datetime, timedelta
from typing import Optional
import hashlib
import secrets

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status, Query, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models.user import UserCreate, UserRole
from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import PasswordResetToken, User, Vendor
from ageless.services.errors import NotFoundError, ValidationFailed, ConflictError
from ageless.services.passwords import (
    hash_password,
    verify_password,
    verify_legacy_password,
    legacy_window_open,
    validate_password_strength,
)
from ageless.utils.logger import logger

security = HTTPBearer()

RESET_TOKEN_TTL = timedelta(hours=1)

_VENDOR_STATUS_MESSAGES = {
    "pending": "Your vendor application is pending approval",
    "rejected": "Your vendor application was rejected",
    "suspended": "Your vendor account has been suspended",
    "archived": "Your vendor account has been archived",
}


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.ALGORITHM)
    return encoded_jwt


def token_for_user(user: User) -> str:
    return create_access_token({"sub": user.id, "role": user.role})


def _user_id_from_token(token: str) -> str:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as e:
        logger.error(f"JWT validation error: {str(e)}")
        raise credentials_exception
    return user_id


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """Authenticate a user by email and password.

    Accounts imported from WordPress carry only ``legacy_password_hash``.
    While the legacy window is open those hashes are accepted once and the
    account is migrated to PBKDF2 on the spot.
    """
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user:
        logger.warning(f"Authentication failed: User not found - {email}")
        return None

    if user.password_hash:
        if not verify_password(password, user.password_hash):
            logger.warning(f"Authentication failed: Invalid password - {email}")
            return None
    elif user.legacy_password_hash:
        if not legacy_window_open():
            logger.warning(f"Authentication failed: legacy window closed - {email}")
            return None
        if not verify_legacy_password(password, user.legacy_password_hash):
            logger.warning(f"Authentication failed: Invalid legacy password - {email}")
            return None
        user.password_hash = hash_password(password)
        user.legacy_password_hash = None
        user.legacy_password_type = None
        user.password_migrated_at = datetime.utcnow()
        logger.info(f"Legacy password migrated to PBKDF2 for user: {email}")
    else:
        logger.warning(f"Authentication failed: no credentials on file - {email}")
        return None

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"User authenticated successfully: {email}")
    return user


def _ensure_account_active(user: User) -> None:
    if user.status != "active":
        logger.warning(f"Non-active user attempted access: {user.email} status={user.status}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account is {user.status}",
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    user_id = _user_id_from_token(credentials.credentials)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.error(f"User not found for token: {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    _ensure_account_active(current_user)
    return current_user


async def admin_required(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.role != UserRole.ADMIN:
        logger.warning(f"Non-admin user attempted admin action: {current_user.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


async def vendor_required(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Vendor:
    """Resolve the caller's vendor record; only approved/active vendors pass."""
    vendor = db.query(Vendor).filter(Vendor.user_id == current_user.id).first()
    if vendor is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Vendor account required")
    if vendor.status not in ("approved", "active"):
        detail = _VENDOR_STATUS_MESSAGES.get(vendor.status, "Vendor account is not active")
        if vendor.status == "rejected" and vendor.rejection_reason:
            detail = f"{detail}: {vendor.rejection_reason}"
        if vendor.status == "suspended" and vendor.suspension_reason:
            detail = f"{detail}: {vendor.suspension_reason}"
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
    return vendor


async def get_user_from_header_or_query(
    request: Request,
    token: Optional[str] = Query(None, description="JWT token for SSE authentication"),
    db: Session = Depends(get_db),
) -> User:
    """
    Authentication dependency that accepts JWT from either:
    1. Authorization header (standard for most endpoints)
    2. Query parameter 'token' (for SSE/EventSource which can't send custom headers)
    """
    jwt_token = None

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        jwt_token = auth_header.replace("Bearer ", "")
    elif token:
        jwt_token = token

    if not jwt_token:
        logger.warning("SSE authentication failed: No token provided in header or query")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = _user_id_from_token(jwt_token)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.error(f"SSE: User not found for token: {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    _ensure_account_active(user)
    return user


def register_user(db: Session, user_data: UserCreate) -> User:
    email = user_data.email.strip().lower()
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        logger.warning(f"Registration failed: Email already exists - {email}")
        raise ConflictError("Email already registered")

    strength = validate_password_strength(user_data.password)
    if not strength["is_valid"]:
        raise ValidationFailed(strength["errors"][0], strength["errors"])

    user = User(
        email=email,
        password_hash=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role=UserRole.CUSTOMER.value,
        status="active",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"New user registered: {user.email} with role: {user.role}")
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailed("Current password is incorrect")
    strength = validate_password_strength(new_password)
    if not strength["is_valid"]:
        raise ValidationFailed(strength["errors"][0], strength["errors"])
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info(f"Password changed for user: {user.email}")


def _hash_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def create_password_reset(db: Session, email: str) -> Optional[str]:
    """Issue a single-use reset token. Returns the raw token, or None for unknown emails."""
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user:
        logger.info(f"Password reset requested for unknown email: {email}")
        return None

    raw = secrets.token_urlsafe(32)
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=_hash_reset_token(raw),
            expires_at=datetime.utcnow() + RESET_TOKEN_TTL,
        )
    )
    db.commit()
    logger.info(f"Password reset token issued for user: {user.email}")
    return raw


def reset_password(db: Session, raw_token: str, new_password: str) -> User:
    record = (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.token_hash == _hash_reset_token(raw_token))
        .first()
    )
    if record is None or record.used_at is not None or record.expires_at < datetime.utcnow():
        raise ValidationFailed("Reset token is invalid or has expired")

    strength = validate_password_strength(new_password)
    if not strength["is_valid"]:
        raise ValidationFailed(strength["errors"][0], strength["errors"])

    user = db.query(User).filter(User.id == record.user_id).first()
    if user is None:
        raise NotFoundError("User not found")

    user.password_hash = hash_password(new_password)
    user.legacy_password_hash = None
    user.legacy_password_type = None
    record.used_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"Password reset completed for user: {user.email}")
    return user
