from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

# ==================== ENUMS ====================

class UserType(str, Enum):
    STUDENT = "student"
    RECRUITER = "recruiter"

# ==================== IDENTITY ====================

@dataclass(frozen=True)
class AuthenticatedIdentity:
    """
    Who is calling, resolved once by the auth dependency
    user_id is an auth-provider UID or a wallet address
    """
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    wallet_address: Optional[str] = None
    provider: str = "jwt"

# ==================== DATABASE MODELS ====================

class UserProfile(BaseModel):
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    user_type: UserType = UserType.STUDENT
    wallet_address: Optional[str] = None
    is_web3_connected: bool = False
    enrolled_courses: List[str] = []
    completed_courses: List[str] = []
    credentials: List[str] = []
    skills: List[str] = []
    company: Optional[str] = None  # recruiter only
    job_title: Optional[str] = None  # recruiter only
    is_admin: bool = False  # derived from email, never stored
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

# ==================== REQUEST MODELS ====================

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None
    user_type: Optional[UserType] = None
    skills: Optional[List[str]] = None
    company: Optional[str] = None
    job_title: Optional[str] = None

class WalletLink(BaseModel):
    wallet_address: str

    @validator("wallet_address")
    def validate_wallet_address(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("wallet_address must not be empty")
        return v
