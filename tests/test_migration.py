from datetime import datetime

import mongomock

from scripts.migrate_certificates import migrate_certificates

def legacy_db():
    db = mongomock.MongoClient()["legacy"]
    db.credentials.create_index("credential_id", unique=True)
    db.credentials.create_index("credential_key", unique=True)
    db.users.insert_one({"user_id": "u1", "credentials": []})
    db.certificates.insert_many([
        {"id": "CERT_1", "userId": "u1", "courseId": "c1", "courseName": "Intro", "issueDate": datetime(2024, 1, 5)},
        {"id": "CERT_2", "userId": "u2", "courseId": "c1", "blockchainVerified": True, "blockchainTxHash": "0xfeed"},
        {"id": "CERT_3", "courseId": "c1"},
    ])
    return db

def test_migrates_legacy_certificates():
    db = legacy_db()

    counts = migrate_certificates(db)

    assert counts == {"migrated": 2, "skipped": 0, "failed": 1}
    first = db.credentials.find_one({"credential_id": "CERT_1"})
    assert first["credential_key"] == "u1:c1"
    assert first["course_name"] == "Intro"
    assert first["issuer"] == "CrediLink+"

    second = db.credentials.find_one({"credential_id": "CERT_2"})
    assert second["course_name"] == "Unknown Course"
    assert second["blockchain_verified"] is True
    assert second["blockchain_tx_hash"] == "0xfeed"

    user = db.users.find_one({"user_id": "u1"})
    assert user["credentials"] == ["CERT_1"]
    assert user["completed_courses"] == ["c1"]

def test_rerun_skips_existing():
    db = legacy_db()
    migrate_certificates(db)

    counts = migrate_certificates(db)

    assert counts == {"migrated": 0, "skipped": 2, "failed": 1}
    assert db.credentials.count_documents({}) == 2
    # legacy records are kept
    assert db.certificates.count_documents({}) == 3

def test_second_certificate_for_same_course_is_skipped():
    db = legacy_db()
    db.certificates.insert_one({"id": "CERT_DUP", "userId": "u1", "courseId": "c1"})

    counts = migrate_certificates(db)

    assert counts["skipped"] == 1
    assert db.credentials.count_documents({"credential_key": "u1:c1"}) == 1
