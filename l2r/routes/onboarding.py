import aiosqlite
from fastapi import APIRouter, Depends

from l2r.db import accounts
from l2r.db.database import get_db
from l2r.models.account import OnboardingState, OnboardingUpdate
from l2r.routes.auth import AuthUser, require_user

router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])


@router.get("")
async def get_onboarding(
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    state = await accounts.get_onboarding(db, auth.user_id)
    if state is None:
        return {"onboarding": OnboardingState().model_dump(exclude={"id"})}
    return {"onboarding": state.model_dump()}


@router.put("")
async def update_onboarding(
    body: OnboardingUpdate,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    state = await accounts.save_onboarding(
        db, auth.user_id, step=body.step, data=body.data, completed=body.completed
    )
    return {"onboarding": state.model_dump()}


@router.post("/complete")
async def complete_onboarding(
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    await accounts.complete_onboarding(db, auth.user_id)
    return {"completed": True}
