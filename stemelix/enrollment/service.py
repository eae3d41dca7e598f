"""
Enrollment manager
File: stemelix/enrollment/service.py

A user's enrollment record lives on the user document. Appending an entry
and bumping the course counter are two independent writes; the append is a
conditional $push so re-running it for the same course is a no-op.
"""

import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from stemelix.errors import Conflict, Forbidden, NotFound

logger = logging.getLogger(__name__)

IN_PROGRESS = "in-progress"
COMPLETED = "completed"


def find_enrollment(user: dict, course_id: str) -> Optional[dict]:
    return next((e for e in user.get("courses_enrolled", []) if e["course_id"] == course_id), None)


async def load_user(db: AsyncIOMotorDatabase, user_id: str) -> dict:
    user = await db.users.find_one({"user_id": user_id})
    if not user:
        raise NotFound("User not found", user_id=user_id)
    return user


async def ensure_enrolled(db: AsyncIOMotorDatabase, user_id: str, course_id: str,
                          payment_id: Optional[str] = None) -> bool:
    """
    Append the enrollment entry unless one already exists.

    Returns True only when this call created the entry; the user and course
    counters move only in that case.
    """
    now = datetime.utcnow()
    entry = {
        "course_id": course_id,
        "status": IN_PROGRESS,
        "progress": 0,
        "enrolled_at": now,
        "payment_id": payment_id,
    }
    result = await db.users.update_one(
        {"user_id": user_id, "courses_enrolled.course_id": {"$ne": course_id}},
        {
            "$push": {"courses_enrolled": entry},
            "$inc": {"total_courses_enrolled": 1},
            "$set": {"updated_at": now},
        },
    )
    if result.modified_count == 0:
        await load_user(db, user_id)
        logger.info("User %s already enrolled in %s", user_id, course_id)
        return False

    await db.courses.update_one(
        {"course_id": course_id},
        {"$inc": {"enrollment_count": 1, "version": 1}},
    )
    logger.info("User %s enrolled in %s (payment %s)", user_id, course_id, payment_id)
    return True


async def enroll(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> dict:
    user = await load_user(db, user_id)
    if not await db.courses.find_one({"course_id": course_id}, {"course_id": 1}):
        raise NotFound("Course not found", course_id=course_id)

    payment = await db.payments.find_one(
        {"user_id": user_id, "course_id": course_id, "status": "verified"},
        sort=[("verified_at", -1)],
    )
    if not payment:
        raise Forbidden("A verified payment is required to enroll in this course", requires_payment=True)

    if find_enrollment(user, course_id) or not await ensure_enrolled(
        db, user_id, course_id, payment["payment_id"]
    ):
        raise Conflict("Already enrolled", course_id=course_id)

    user = await load_user(db, user_id)
    return find_enrollment(user, course_id)


async def complete_course(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> dict:
    user = await load_user(db, user_id)
    entry = find_enrollment(user, course_id)
    if entry is None:
        raise NotFound("Enrollment not found", course_id=course_id)

    entry["status"] = COMPLETED
    entry["progress"] = 100
    entry["completed_at"] = entry.get("completed_at") or datetime.utcnow()
    completed = sum(1 for e in user["courses_enrolled"] if e["status"] == COMPLETED)

    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {
            "courses_enrolled": user["courses_enrolled"],
            "courses_completed": completed,
            "updated_at": datetime.utcnow(),
        }},
    )
    logger.info("User %s completed %s", user_id, course_id)
    return {"enrollment": entry, "courses_completed": completed}


async def list_enrollments(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    user = await load_user(db, user_id)
    entries = user.get("courses_enrolled", [])
    course_ids = [e["course_id"] for e in entries]

    cursor = db.courses.find({"course_id": {"$in": course_ids}}, {"course_id": 1, "title": 1, "thumbnail_url": 1})
    titles = {c["course_id"]: c for c in await cursor.to_list(length=None)}

    return [
        {
            **e,
            "course_title": titles.get(e["course_id"], {}).get("title"),
            "thumbnail_url": titles.get(e["course_id"], {}).get("thumbnail_url"),
        }
        for e in entries
    ]
