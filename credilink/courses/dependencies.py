from fastapi import Depends, Header, HTTPException
from jose import jwt, JWTError
from motor.motor_asyncio import AsyncIOMotorDatabase

from credilink.config import JWT_SECRET_KEY, JWT_ALGORITHM
from credilink.users.user_models import AuthenticatedIdentity, UserProfile
from credilink.users.user_service import get_or_create_user

def get_db_instance():
    """Get database from main module"""
    from credilink.main import db
    return db

# ==================== DEPENDENCY FUNCTIONS ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return get_db_instance()

def _decode_jwt_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")

async def get_identity(authorization: str = Header(None)) -> AuthenticatedIdentity:
    """
    Resolve the caller from a Bearer token issued by the identity provider
    `sub` is the auth-provider UID, or the wallet address for wallet sign-in
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = _decode_jwt_token(authorization.split(" ", 1)[1])
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")

    return AuthenticatedIdentity(
        user_id=user_id,
        email=payload.get("email"),
        name=payload.get("name"),
        image=payload.get("picture"),
        wallet_address=payload.get("wallet"),
        provider=payload.get("provider", "jwt"),
    )

async def get_current_user(
    identity: AuthenticatedIdentity = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> UserProfile:
    """Every authenticated request makes sure the user record exists"""
    return await get_or_create_user(db, identity)

async def get_current_user_id(user: UserProfile = Depends(get_current_user)) -> str:
    return user.user_id

async def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
