from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models.user import (
    ChangePasswordRequest,
    PasswordReset,
    PasswordResetRequest,
    Token,
    UserCreate,
    UserLogin,
    UserResponse,
)
from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User
from ageless.services.auth import (
    authenticate_user,
    change_password,
    create_password_reset,
    get_current_active_user,
    register_user,
    reset_password,
    token_for_user,
)
from ageless.services.messaging import send_templated_email
from ageless.services.passwords import validate_password_strength
from ageless.utils.logger import logger

router = APIRouter(prefix="/api/auth", tags=["authentication"])


class PasswordCheck(BaseModel):
    password: str


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: Session = Depends(get_db)):
    logger.info(f"Registration attempt for email: {user_data.email}")
    user = register_user(db, user_data)
    return Token(
        access_token=token_for_user(user),
        token_type="bearer",
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=Token)
async def login(user_credentials: UserLogin, request: Request, db: Session = Depends(get_db)):
    rid = getattr(request.state, "rid", "unknown")
    logger.info(f"Login attempt email={user_credentials.email} rid={rid}")

    user = authenticate_user(db, user_credentials.email, user_credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Account is {user.status}")

    return Token(
        access_token=token_for_user(user),
        token_type="bearer",
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_active_user)):
    return current_user


@router.post("/change-password")
async def change_password_endpoint(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    if payload.new_password != payload.confirm_new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New passwords do not match")
    change_password(db, current_user, payload.current_password, payload.new_password)
    return {"message": "Password changed successfully"}


@router.post("/password-strength")
async def password_strength(payload: PasswordCheck):
    return validate_password_strength(payload.password)


@router.post("/forgot-password")
async def forgot_password(
    payload: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    raw = create_password_reset(db, payload.email)
    if raw:
        user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
        background_tasks.add_task(
            send_templated_email,
            "password-reset",
            user.email,
            {
                "user_name": user.first_name or "there",
                "reset_link": f"{settings.FRONTEND_URL.rstrip('/')}/reset-password?token={raw}",
            },
        )
    # Same answer for unknown emails.
    return {"message": "If that email is registered, a reset link has been sent"}


@router.post("/reset-password")
async def reset_password_endpoint(payload: PasswordReset, db: Session = Depends(get_db)):
    reset_password(db, payload.reset_token, payload.new_password)
    return {"message": "Password has been reset"}
