"""
CrediLink Learning Core - Main Application
Enrollment, quiz progress, final tests, credentials and the leaderboard
"""

import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ConnectionFailure

from credilink.config import MONGO_URL, DB_NAME, LOG_LEVEL
from credilink.errors import LearningError
from credilink.courses.database import create_indexes
from credilink.courses.course_router import router as course_router
from credilink.courses.enrollment_router import router as enrollment_router
from credilink.courses.progress_router import router as progress_router
from credilink.courses.leaderboard_router import router as leaderboard_router
from credilink.courses.certificate_router import router as certificate_router
from credilink.users.user_router import router as user_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CrediLink Learning Core")

# MongoDB Configuration
client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ERROR HANDLING ====================

@app.exception_handler(LearningError)
async def learning_error_handler(request: Request, exc: LearningError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.__class__.__name__, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

@app.exception_handler(ConnectionFailure)
async def store_unavailable_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Database unavailable, retry later"})

# ==================== ROUTER REGISTRATION ====================

def setup_course_routes(app: FastAPI):
    """Register all course-related routers"""
    app.include_router(certificate_router, prefix="/courses")
    app.include_router(leaderboard_router, prefix="/courses")
    app.include_router(enrollment_router, prefix="/courses")
    app.include_router(progress_router, prefix="/courses")
    app.include_router(course_router, prefix="/courses")
    app.include_router(user_router, prefix="/users")
    logger.info("Course routes registered")

setup_course_routes(app)

@app.on_event("startup")
async def startup_event():
    await create_indexes(db)
    logger.info("Learning core initialized on database %s", DB_NAME)

@app.get("/health")
async def health():
    return {"status": "ok"}
