import logging
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from stemelix.database import replace_versioned, serialize_mongo
from stemelix.errors import NotFound
from stemelix.progress.tracker import ProgressTracker, build_progress_skeleton

logger = logging.getLogger(__name__)

COURSE_SUMMARY_FIELDS = {"course_id": 1, "title": 1, "thumbnail_url": 1}


async def load_progress(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> dict:
    progress = await db.progress.find_one({"user_id": user_id, "course_id": course_id})
    if not progress:
        raise NotFound("Progress not found", course_id=course_id)
    return progress


async def _save(db: AsyncIOMotorDatabase, progress: dict) -> dict:
    saved = await replace_versioned(
        db.progress,
        {"user_id": progress["user_id"], "course_id": progress["course_id"]},
        progress,
    )
    # Mirror the percentage onto the user's enrollment entry, if there is one
    await db.users.update_one(
        {"user_id": progress["user_id"], "courses_enrolled.course_id": progress["course_id"]},
        {"$set": {"courses_enrolled.$.progress": saved["overall_progress"]}},
    )
    return serialize_mongo(saved)


async def initialize(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> Tuple[dict, bool]:
    """
    Return the existing progress document or create it from the course tree.

    The second element is True when this call created the document.
    """
    existing = await db.progress.find_one({"user_id": user_id, "course_id": course_id})
    if existing:
        return serialize_mongo(existing), False

    course = await db.courses.find_one({"course_id": course_id})
    if not course:
        raise NotFound("Course not found", course_id=course_id)

    progress = build_progress_skeleton(user_id, course_id, course)
    try:
        await db.progress.insert_one(progress)
    except DuplicateKeyError:
        # Lost the race against a concurrent initialize
        return serialize_mongo(await load_progress(db, user_id, course_id)), False

    logger.info("Progress initialized for %s in %s", user_id, course_id)
    return serialize_mongo(progress), True


async def record_lecture_progress(
    db: AsyncIOMotorDatabase,
    user_id: str,
    course_id: str,
    lecture_id: str,
    time_spent: float = 0,
    watch_percentage: float = None,
    last_watched_position: float = None,
    is_completed: bool = False
) -> dict:
    progress = await load_progress(db, user_id, course_id)
    ProgressTracker(progress).record_lecture(
        lecture_id,
        time_spent=time_spent,
        watch_percentage=watch_percentage,
        last_watched_position=last_watched_position,
        is_completed=is_completed,
    )
    return await _save(db, progress)


async def record_attendance(db: AsyncIOMotorDatabase, user_id: str, course_id: str, lecture_id: str,
                            attended: Optional[bool] = None, total_seconds: float = 0) -> dict:
    progress = await load_progress(db, user_id, course_id)
    ProgressTracker(progress).record_attendance(lecture_id, attended=attended, total_seconds=total_seconds)
    return await _save(db, progress)


async def record_project_submission(
    db: AsyncIOMotorDatabase,
    user_id: str,
    course_id: str,
    project_id: str,
    submission_file: str = None,
    grade: float = None,
    reviewer_notes: str = None
) -> dict:
    progress = await load_progress(db, user_id, course_id)
    ProgressTracker(progress).record_project(
        project_id, submission_file=submission_file, grade=grade, reviewer_notes=reviewer_notes
    )
    return await _save(db, progress)


async def get_course_progress(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> dict:
    progress = serialize_mongo(await load_progress(db, user_id, course_id))
    progress["course"] = serialize_mongo(await db.courses.find_one({"course_id": course_id}, COURSE_SUMMARY_FIELDS))
    return progress


async def list_user_progress(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    progresses = await db.progress.find({"user_id": user_id}).sort("last_accessed_date", -1).to_list(length=None)
    course_ids = [p["course_id"] for p in progresses]
    cursor = db.courses.find({"course_id": {"$in": course_ids}}, COURSE_SUMMARY_FIELDS)
    courses = {c["course_id"]: serialize_mongo(c) for c in await cursor.to_list(length=None)}
    result = []
    for p in progresses:
        item = serialize_mongo(p)
        item["course"] = courses.get(p["course_id"])
        result.append(item)
    return result
