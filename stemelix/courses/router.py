from typing import Optional

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from stemelix.auth.guard import (
    CallerContext, get_current_caller, get_current_user, get_optional_caller
)
from stemelix.courses import service
from stemelix.courses.models import (
    ChapterCreate, ChapterUpdate, CourseCategory, CourseCreate, CourseUpdate,
    LectureCreate, LectureUpdate, ProjectCreate, ProjectSubmit
)
from stemelix.database import get_db

router = APIRouter(prefix="/courses", tags=["Courses"])

# ==================== CATALOG ====================

@router.get("")
async def list_courses(
    category: Optional[CourseCategory] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: Optional[CallerContext] = Depends(get_optional_caller)
):
    courses = await service.list_courses(
        db, caller, category=category.value if category else None, skip=skip, limit=limit
    )
    return {"success": True, "courses": courses, "count": len(courses)}


@router.post("", status_code=201)
async def create_course(
    data: CourseCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    """Create a course (admin). Thumbnail must already be hosted."""
    course = await service.create_course(db, caller, data)
    return {"success": True, "message": "Course created successfully", "course": course}


@router.get("/slug/{slug}")
async def get_course_by_slug(
    slug: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: Optional[CallerContext] = Depends(get_optional_caller)
):
    return await service.get_course_by_slug(db, caller, slug)


@router.get("/{course_id}")
async def get_course(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: Optional[CallerContext] = Depends(get_optional_caller)
):
    return await service.get_course_by_id(db, caller, course_id)


@router.put("/{course_id}")
async def update_course(
    course_id: str,
    data: CourseUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    course = await service.update_course(db, caller, course_id, data)
    return {"success": True, "message": "Course updated successfully", "course": course}


@router.delete("/{course_id}")
async def delete_course(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    await service.delete_course(db, caller, course_id)
    return {"success": True, "message": "Course deleted successfully"}

# ==================== CONTENT ====================

@router.get("/{course_id}/content")
async def get_course_content(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: Optional[CallerContext] = Depends(get_optional_caller)
):
    """All chapters and lectures of a course, with derived totals"""
    content = await service.get_course_content(db, caller, course_id)
    return {"success": True, **content}


@router.post("/{course_id}/chapters", status_code=201)
async def add_chapter(
    course_id: str,
    data: ChapterCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    chapter = await service.add_chapter(db, caller, course_id, data.chapter_order, data.chapter_title)
    return {"success": True, "message": "Chapter added successfully", "chapter": chapter}


@router.put("/{course_id}/chapters/{chapter_id}")
async def edit_chapter(
    course_id: str,
    chapter_id: str,
    data: ChapterUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    chapter = await service.edit_chapter(
        db, caller, course_id, chapter_id, title=data.chapter_title, order=data.chapter_order
    )
    return {"success": True, "message": "Chapter updated successfully", "chapter": chapter}


@router.delete("/{course_id}/chapters/{chapter_id}")
async def delete_chapter(
    course_id: str,
    chapter_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    course = await service.delete_chapter(db, caller, course_id, chapter_id)
    return {"success": True, "message": "Chapter deleted successfully", "course": course}


@router.post("/{course_id}/chapters/{chapter_id}/lectures", status_code=201)
async def add_lecture(
    course_id: str,
    chapter_id: str,
    data: LectureCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    lecture = await service.add_lecture(
        db, caller, course_id, chapter_id,
        title=data.lecture_title,
        duration=data.lecture_duration,
        order=data.lecture_order,
        url=data.lecture_url,
        is_preview_free=data.is_preview_free,
    )
    return {"success": True, "message": "Lecture added successfully", "lecture": lecture}


@router.put("/{course_id}/chapters/{chapter_id}/lectures/{lecture_id}")
async def edit_lecture(
    course_id: str,
    chapter_id: str,
    lecture_id: str,
    data: LectureUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    lecture = await service.edit_lecture(
        db, caller, course_id, chapter_id, lecture_id,
        title=data.lecture_title,
        duration=data.lecture_duration,
        order=data.lecture_order,
        url=data.lecture_url,
        is_preview_free=data.is_preview_free,
    )
    return {"success": True, "message": "Lecture updated successfully", "lecture": lecture}


@router.delete("/{course_id}/chapters/{chapter_id}/lectures/{lecture_id}")
async def delete_lecture(
    course_id: str,
    chapter_id: str,
    lecture_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    course = await service.delete_lecture(db, caller, course_id, chapter_id, lecture_id)
    return {"success": True, "message": "Lecture deleted successfully", "course": course}

# ==================== PROJECTS ====================

@router.post("/{course_id}/projects", status_code=201)
async def create_project(
    course_id: str,
    data: ProjectCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    project = await service.create_project(db, caller, course_id, data)
    return {"success": True, "message": "Project added successfully", "project": project}


@router.post("/{course_id}/projects/{project_id}/submit", status_code=201)
async def submit_project(
    course_id: str,
    project_id: str,
    data: ProjectSubmit,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    submission = await service.submit_project(db, caller, course_id, project_id, data.submission_file)
    return {"success": True, "message": "Project submitted successfully", "submission": submission}


@router.get("/{course_id}/submissions/me")
async def my_submissions(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    submissions = await service.list_user_submissions(db, caller, course_id)
    return {"success": True, "course_id": course_id, "submissions": submissions}
