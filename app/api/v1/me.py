# app/api/v1/me.py
from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.core.roles import capabilities_of
from app.models.user import User
from app.schemas.user import MeOut

router = APIRouter()


@router.get("/me", response_model=MeOut)
def get_me(
    current_user: User = Depends(get_current_user),
):
    """Identity of the caller plus the capability flags the UI gates on."""
    return MeOut(
        id=current_user.id,
        name=current_user.name,
        email=current_user.email,
        role=current_user.role,
        capabilities=capabilities_of(current_user),
    )
