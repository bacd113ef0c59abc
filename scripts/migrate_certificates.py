"""
Move certificates from the legacy `certificates` collection into `credentials`

Safe to re-run: a certificate whose id or (user, course) pair is already in
`credentials` is skipped. The legacy collection is left untouched.

Usage: MONGO_URL=... DB_NAME=... python -m scripts.migrate_certificates
"""

from datetime import datetime
import logging
from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from credilink.config import MONGO_URL, DB_NAME, CREDENTIAL_ISSUER, CREDENTIAL_ISSUER_ID, LOG_LEVEL
from credilink.courses.database import credential_key
from credilink.courses.models import CREDENTIAL_SCHEMA_VERSION

logger = logging.getLogger("migrate_certificates")

def legacy_to_credential(doc: dict) -> dict:
    credential_id = str(doc.get("id") or doc["_id"])
    user_id = doc["userId"]
    course_id = doc["courseId"]
    return {
        "credential_id": credential_id,
        "credential_key": credential_key(user_id, course_id),
        "schema_version": CREDENTIAL_SCHEMA_VERSION,
        "user_id": user_id,
        "course_id": course_id,
        "course_name": doc.get("courseName") or "Unknown Course",
        "issue_date": doc.get("issueDate") or datetime.utcnow(),
        "expiry_date": doc.get("expiryDate"),
        "skills": doc.get("skills") or [],
        "certificate_url": doc.get("certificateUrl"),
        "blockchain_verified": bool(doc.get("blockchainVerified")),
        "blockchain_tx_hash": doc.get("blockchainTxHash") or None,
        "issuer": doc.get("issuer") or CREDENTIAL_ISSUER,
        "issuer_id": doc.get("issuerId") or CREDENTIAL_ISSUER_ID,
    }

def migrate_certificates(db) -> dict:
    """Returns counts of migrated, skipped and failed certificates"""
    migrated, skipped, failed = [], [], []

    for doc in db.certificates.find():
        legacy_id = str(doc.get("id") or doc["_id"])

        if not doc.get("userId") or not doc.get("courseId"):
            logger.warning("Certificate %s missing required fields, skipping", legacy_id)
            failed.append({"id": legacy_id, "reason": "Missing required fields"})
            continue

        credential = legacy_to_credential(doc)
        existing = db.credentials.find_one({"$or": [
            {"credential_id": credential["credential_id"]},
            {"credential_key": credential["credential_key"]},
        ]})
        if existing:
            logger.info("Certificate %s already in credentials, skipping", legacy_id)
            skipped.append(legacy_id)
            continue

        try:
            db.credentials.insert_one(credential)
            db.users.update_one(
                {"user_id": credential["user_id"]},
                {"$addToSet": {
                    "credentials": credential["credential_id"],
                    "completed_courses": credential["course_id"],
                }}
            )
        except DuplicateKeyError:
            skipped.append(legacy_id)
            continue
        except PyMongoError as e:
            logger.error("Error migrating certificate %s: %s", legacy_id, e)
            failed.append({"id": legacy_id, "reason": str(e)})
            continue

        migrated.append(legacy_id)

    logger.info(
        "Migration complete. migrated=%d skipped=%d failed=%d",
        len(migrated), len(skipped), len(failed)
    )
    for f in failed:
        logger.warning("- %s: %s", f["id"], f["reason"])

    return {"migrated": len(migrated), "skipped": len(skipped), "failed": len(failed)}

if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL)
    client = MongoClient(MONGO_URL)
    migrate_certificates(client[DB_NAME])
