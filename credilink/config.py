"""
CrediLink Learning Core Configuration
Database, auth, grading and AI settings
"""

import os

# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "credilink_db")

# Auth (shared secret with the identity provider)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ADMIN_EMAILS = [e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()]

# Grading
DEFAULT_PASSING_SCORE = int(os.getenv("DEFAULT_PASSING_SCORE", "70"))

# Gemini quiz authoring
GEMINI_API_KEYS = [k.strip() for k in os.getenv("GEMINI_API_KEYS", "").split(",") if k.strip()]
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
GEMINI_MAX_RETRIES = int(os.getenv("GEMINI_MAX_RETRIES", "3"))
QUIZ_QUESTION_COUNT = int(os.getenv("QUIZ_QUESTION_COUNT", "5"))
FINAL_TEST_QUESTION_COUNT = int(os.getenv("FINAL_TEST_QUESTION_COUNT", "15"))

# Credentials
CREDENTIAL_ISSUER = os.getenv("CREDENTIAL_ISSUER", "CrediLink+")
CREDENTIAL_ISSUER_ID = os.getenv("CREDENTIAL_ISSUER_ID", "credilink-system")
CREDENTIAL_VALIDITY_DAYS = int(os.getenv("CREDENTIAL_VALIDITY_DAYS", "0"))  # 0 = never expires
DEFAULT_SKILLS = ["blockchain", "web3"]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
