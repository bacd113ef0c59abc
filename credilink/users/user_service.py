from datetime import datetime
from typing import Optional
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from credilink.config import ADMIN_EMAILS
from credilink.errors import InvalidArgument, NotFound
from credilink.users.user_models import AuthenticatedIdentity, UserProfile, ProfileUpdate, UserType

logger = logging.getLogger(__name__)

def is_admin_email(email: Optional[str]) -> bool:
    return bool(email) and email.strip().lower() in ADMIN_EMAILS

def _to_profile(doc: dict) -> UserProfile:
    profile = UserProfile(**doc)
    profile.is_admin = is_admin_email(profile.email)
    return profile

def new_user_document(user_id: str, **fields) -> dict:
    """Initial user record; used as $setOnInsert so it never clobbers an existing user"""
    return {
        "user_id": user_id,
        "name": fields.get("name"),
        "email": fields.get("email"),
        "image": fields.get("image"),
        "user_type": UserType.STUDENT.value,
        "wallet_address": fields.get("wallet_address"),
        "is_web3_connected": bool(fields.get("wallet_address")),
        "enrolled_courses": [],
        "completed_courses": [],
        "credentials": [],
        "skills": [],
        "created_at": datetime.utcnow(),
    }

# ==================== USER RECORDS ====================

async def ensure_user_record(db: AsyncIOMotorDatabase, user_id: str) -> bool:
    """
    Create a bare student record for user_id if none exists
    Returns True when a record was created
    """
    if not user_id:
        raise InvalidArgument("user_id is required")

    # a user we have never seen is usually a wallet user
    result = await db.users.update_one(
        {"user_id": user_id},
        {"$setOnInsert": new_user_document(user_id, wallet_address=user_id)},
        upsert=True
    )
    if result.upserted_id is not None:
        logger.info("Created user record for %s", user_id)
        return True
    return False

async def get_or_create_user(db: AsyncIOMotorDatabase, identity: AuthenticatedIdentity) -> UserProfile:
    """Called on every successful authentication, whatever the provider"""
    if not identity.user_id:
        raise InvalidArgument("identity has no user_id")

    doc = await db.users.find_one_and_update(
        {"user_id": identity.user_id},
        {"$setOnInsert": new_user_document(
            identity.user_id,
            name=identity.name,
            email=identity.email,
            image=identity.image,
            wallet_address=identity.wallet_address,
        )},
        upsert=True,
        return_document=ReturnDocument.AFTER
    )
    return _to_profile(doc)

async def get_user(db: AsyncIOMotorDatabase, user_id: str) -> Optional[UserProfile]:
    doc = await db.users.find_one({"user_id": user_id})
    return _to_profile(doc) if doc else None

async def update_profile(db: AsyncIOMotorDatabase, user_id: str, updates: ProfileUpdate) -> UserProfile:
    changes = {k: v for k, v in updates.dict().items() if v is not None}
    changes["updated_at"] = datetime.utcnow()

    doc = await db.users.find_one_and_update(
        {"user_id": user_id},
        {"$set": changes},
        return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise NotFound(f"User {user_id} not found")
    return _to_profile(doc)

async def link_wallet(db: AsyncIOMotorDatabase, user_id: str, wallet_address: str) -> UserProfile:
    doc = await db.users.find_one_and_update(
        {"user_id": user_id},
        {"$set": {
            "wallet_address": wallet_address,
            "is_web3_connected": True,
            "updated_at": datetime.utcnow()
        }},
        return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise NotFound(f"User {user_id} not found")
    return _to_profile(doc)
