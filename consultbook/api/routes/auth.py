# consultbook/api/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from consultbook.api.deps import get_services, require_admin
from consultbook.db.models.user import User
from consultbook.schemas.auth import ForgotPasswordIn, ResetPasswordIn, UserOut
from consultbook.services.container import Services

router = APIRouter(prefix="/api", tags=["auth"])


@router.get("/user", response_model=UserOut)
async def current_user(user: User = Depends(require_admin)):
    return UserOut.model_validate(user)


@router.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordIn, services: Services = Depends(get_services)):
    await services.auth.request_password_reset(payload.email)
    # Same answer whether or not the account exists
    return {"message": "If an account exists with that email, a password reset link has been sent"}


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordIn, services: Services = Depends(get_services)):
    await services.auth.reset_password(payload.token, payload.new_password)
    return {"message": "Password updated successfully"}
