from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from credilink.courses.dependencies import get_db, get_current_user
from credilink.users.user_models import UserProfile, ProfileUpdate, WalletLink
from credilink.users.user_service import update_profile, link_wallet

router = APIRouter(tags=["Users"])

@router.get("/me", response_model=UserProfile)
async def get_me(user: UserProfile = Depends(get_current_user)):
    return user

@router.put("/me", response_model=UserProfile)
async def update_me(
    updates: ProfileUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: UserProfile = Depends(get_current_user)
):
    return await update_profile(db, user.user_id, updates)

@router.post("/me/wallet", response_model=UserProfile)
async def connect_wallet(
    wallet: WalletLink,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user: UserProfile = Depends(get_current_user)
):
    return await link_wallet(db, user.user_id, wallet.wallet_address)
