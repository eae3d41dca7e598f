"""
Course catalog + content authoring
File: stemelix/courses/service.py

Writes are admin-only; the caller context is built at the HTTP boundary and
only asked ``is_admin`` here. Every content mutation is a read-modify-write
of the whole course document guarded by its version counter.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from stemelix import config
from stemelix.auth.guard import CallerContext, require_admin
from stemelix.common.audit import log_audit
from stemelix.courses.content import CourseContent
from stemelix.courses.models import (
    CourseCreate, CourseUpdate, CourseStatus, ProjectCreate, SubmissionStatus
)
from stemelix.database import generate_id, replace_versioned, serialize_mongo
from stemelix.errors import Conflict, Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)


def make_slug(title: str, level_number: int) -> str:
    base = title.lower().strip()
    base = re.sub(r"[^a-z0-9\s-]", "", base)
    base = re.sub(r"\s+", "-", base)
    base = re.sub(r"-+", "-", base).strip("-")
    return f"{base}{level_number or 1}"


def with_derived_fields(course: dict) -> dict:
    """Attach chapter/lecture totals and free previews (never stored)"""
    course = serialize_mongo(course)
    course.update(CourseContent.of(course).summary())
    return course


async def load_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    course = await db.courses.find_one({"course_id": course_id})
    if not course:
        raise NotFound("Course not found", course_id=course_id)
    return course


async def save_course(db: AsyncIOMotorDatabase, course: dict) -> dict:
    return await replace_versioned(db.courses, {"course_id": course["course_id"]}, course)


# ==================== COURSE CRUD ====================

async def create_course(db: AsyncIOMotorDatabase, caller: CallerContext, data: CourseCreate) -> dict:
    require_admin(caller)

    now = datetime.utcnow()
    course = {
        "course_id": generate_id("CRS"),
        "title": data.title.strip(),
        "slug": make_slug(data.title, data.level_number),
        "category": data.category.value,
        "level_number": data.level_number,
        "description": data.description.strip(),
        "thumbnail_url": data.thumbnail_url,
        "duration": data.duration,
        "grade_range": data.grade_range.model_dump(),
        "price": data.price,
        "currency": config.DEFAULT_CURRENCY,
        "status": data.status.value,
        "featured": data.featured,
        "order": data.order,
        "tags": data.tags,
        "enrollment_count": 0,
        "course_content": [],
        "projects": [],
        "submissions": [],
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }
    try:
        await db.courses.insert_one(course)
    except DuplicateKeyError:
        raise Conflict("A course with this title and level already exists", slug=course["slug"])

    await log_audit(db, caller, "create_course", "course", course["course_id"])
    logger.info("Course created: %s (%s)", course["title"], course["course_id"])
    return with_derived_fields(course)


async def list_courses(db: AsyncIOMotorDatabase, caller: Optional[CallerContext],
                       category: str = None, skip: int = 0, limit: int = 50) -> List[dict]:
    """Active courses for everyone; admins see drafts and inactive ones too"""
    query = {}
    if caller is None or not caller.is_admin:
        query["status"] = CourseStatus.ACTIVE.value
    if category:
        query["category"] = category

    cursor = db.courses.find(query, {"submissions": 0}).sort([("featured", -1), ("order", 1)]).skip(skip).limit(limit)
    courses = await cursor.to_list(length=limit)
    return [with_derived_fields(c) for c in courses]


def visible_course(course: dict, caller: Optional[CallerContext]) -> dict:
    """Drafts and inactive courses are admin-only; students never see submissions"""
    is_admin = caller is not None and caller.is_admin
    if not is_admin and course["status"] != CourseStatus.ACTIVE.value:
        raise Forbidden("This course is not available", course_id=course["course_id"])
    if not is_admin:
        course.pop("submissions", None)
    return course


async def get_course_by_id(db: AsyncIOMotorDatabase, caller: Optional[CallerContext], course_id: str) -> dict:
    course = await load_course(db, course_id)
    return with_derived_fields(visible_course(course, caller))


async def get_course_by_slug(db: AsyncIOMotorDatabase, caller: Optional[CallerContext], slug: str) -> dict:
    """
    Look a course up by its slug, falling back to a case-insensitive title
    match where hyphens stand for spaces (links shared before slugs existed).
    """
    slug = (slug or "").strip().lower()
    if not slug:
        raise ValidationError("Slug is required")

    course = await db.courses.find_one({"slug": slug})
    if not course:
        title = re.escape(slug.replace("-", " "))
        course = await db.courses.find_one({"title": {"$regex": f"^{title}$", "$options": "i"}})
    if not course:
        raise NotFound("Course not found", slug=slug)
    return with_derived_fields(visible_course(course, caller))


async def update_course(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str, data: CourseUpdate) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)

    updates = data.model_dump(exclude_none=True, mode="json")
    if not updates:
        raise ValidationError("Nothing to update")
    course.update(updates)

    if "title" in updates or "level_number" in updates:
        course["slug"] = make_slug(course["title"], course["level_number"])

    try:
        saved = await save_course(db, course)
    except DuplicateKeyError:
        raise Conflict("A course with this title and level already exists", slug=course["slug"])

    await log_audit(db, caller, "update_course", "course", course_id, {"fields": sorted(updates)})
    return with_derived_fields(saved)


async def delete_course(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str) -> None:
    require_admin(caller)
    result = await db.courses.delete_one({"course_id": course_id})
    if result.deleted_count == 0:
        raise NotFound("Course not found", course_id=course_id)
    await log_audit(db, caller, "delete_course", "course", course_id)


# ==================== CONTENT TREE ====================

async def get_course_content(db: AsyncIOMotorDatabase, caller: Optional[CallerContext], course_id: str) -> dict:
    course = visible_course(await load_course(db, course_id), caller)
    content = CourseContent.of(course)
    return {
        "course_id": course_id,
        "title": course["title"],
        "chapters": content.chapters,
        **content.summary(),
    }


async def add_chapter(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str,
                      order: int, title: str) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)
    chapter = CourseContent.of(course).add_chapter(order, title)
    await save_course(db, course)
    await log_audit(db, caller, "add_chapter", "course", course_id, {"chapter_id": chapter["chapter_id"]})
    return chapter


async def edit_chapter(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str, chapter_id: str,
                       title: str = None, order: int = None) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)
    chapter = CourseContent.of(course).edit_chapter(chapter_id, title=title, order=order)
    await save_course(db, course)
    await log_audit(db, caller, "edit_chapter", "course", course_id, {"chapter_id": chapter_id})
    return chapter


async def delete_chapter(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str, chapter_id: str) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)
    CourseContent.of(course).delete_chapter(chapter_id)
    saved = await save_course(db, course)
    await log_audit(db, caller, "delete_chapter", "course", course_id, {"chapter_id": chapter_id})
    return with_derived_fields(saved)


async def add_lecture(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str, chapter_id: str,
                      title: str, duration: str, order: int, url: str, is_preview_free: bool = False) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)
    lecture = CourseContent.of(course).add_lecture(
        chapter_id, title, duration, order, url, is_preview_free
    )
    await save_course(db, course)
    await log_audit(db, caller, "add_lecture", "course", course_id,
                    {"chapter_id": chapter_id, "lecture_id": lecture["lecture_id"]})
    return lecture


async def edit_lecture(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str, chapter_id: str,
                       lecture_id: str, **changes) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)
    lecture = CourseContent.of(course).edit_lecture(chapter_id, lecture_id, **changes)
    await save_course(db, course)
    await log_audit(db, caller, "edit_lecture", "course", course_id,
                    {"chapter_id": chapter_id, "lecture_id": lecture_id})
    return lecture


async def delete_lecture(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str,
                         chapter_id: str, lecture_id: str) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)
    CourseContent.of(course).delete_lecture(chapter_id, lecture_id)
    saved = await save_course(db, course)
    await log_audit(db, caller, "delete_lecture", "course", course_id,
                    {"chapter_id": chapter_id, "lecture_id": lecture_id})
    return with_derived_fields(saved)


# ==================== PROJECTS ====================

async def create_project(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str, data: ProjectCreate) -> dict:
    require_admin(caller)
    course = await load_course(db, course_id)

    project = {
        "project_id": generate_id("PRJ"),
        "project_name": data.project_name.strip(),
        "project_description": data.project_description.strip(),
        "project_upload": data.project_upload,
        "updated_at": datetime.utcnow(),
    }
    course.setdefault("projects", []).append(project)
    await save_course(db, course)
    await log_audit(db, caller, "create_project", "course", course_id, {"project_id": project["project_id"]})
    return project


async def submit_project(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str,
                         project_id: str, submission_file: str) -> dict:
    """Append a student submission record to the course"""
    if not submission_file:
        raise ValidationError("submission_file is required")
    course = await load_course(db, course_id)
    if not any(p["project_id"] == project_id for p in course.get("projects", [])):
        raise NotFound("Project not found", project_id=project_id)

    submission = {
        "project_id": project_id,
        "user_id": caller.user_id,
        "submission_file": submission_file,
        "submitted_at": datetime.utcnow(),
        "status": SubmissionStatus.PENDING.value,
        "feedback": None,
    }
    # Bumping the version makes a concurrent content edit fail instead of dropping this entry
    await db.courses.update_one(
        {"course_id": course_id},
        {"$push": {"submissions": submission}, "$inc": {"version": 1}},
    )
    return submission


async def list_user_submissions(db: AsyncIOMotorDatabase, caller: CallerContext, course_id: str) -> List[dict]:
    course = await load_course(db, course_id)
    return [s for s in course.get("submissions", []) if s.get("user_id") == caller.user_id]
