"""
Users router - handles user profile endpoints.
All endpoints here require authentication (JWT token in Authorization header).
"""

from fastapi import APIRouter, Depends

from app.deps import get_current_user, get_transfer_orchestrator
from app.models.user import User
from app.schemas.user import UserOut, UserProfileOut, UserStatsOut
from app.services.transfer import TransferOrchestrator

# ---------------------------------------------------------------------------
# ROUTER SETUP
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/users", tags=["users"])


# ---------------------------------------------------------------------------
# GET /users/me - Get the current user's profile
# ---------------------------------------------------------------------------
@router.get("/me", response_model=UserProfileOut)
async def read_current_user(
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    """
    Get the signed-in user's profile with their transfer totals.

    The frontend calls this after the OAuth callback to show who is signed
    in and whether their Google account is still connected (a user who
    disconnected Google can neither send nor receive files).

    stats counts file transfers on both sides: files the user handed over
    and files they received.
    """
    stats = await orchestrator.get_user_stats(current_user.id)
    return UserProfileOut(
        **UserOut.model_validate(current_user).model_dump(),
        stats=UserStatsOut.model_validate(stats),
    )
