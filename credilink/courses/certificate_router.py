from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from credilink.courses.certification import get_credential, list_user_credentials, verify_credential
from credilink.courses.dependencies import get_db, get_current_user_id

router = APIRouter(tags=["Certificates"])

# ==================== ENDPOINTS ====================

@router.get("/certificates/mine")
async def get_my_certificates(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    credentials = await list_user_credentials(db, user_id)
    return {"certificates": credentials, "count": len(credentials)}

@router.get("/certificates/verify/{credential_id}")
async def verify_certificate(credential_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Public: anyone holding the id can check it"""
    return await verify_credential(db, credential_id)

@router.get("/certificates/{credential_id}")
async def get_certificate(credential_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await get_credential(db, credential_id)
