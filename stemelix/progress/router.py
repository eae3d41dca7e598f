from typing import Optional

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from stemelix.auth.guard import CallerContext, get_current_caller, get_current_user
from stemelix.database import get_db
from stemelix.errors import Forbidden, ValidationError
from stemelix.progress import service

router = APIRouter(prefix="/progress", tags=["Progress"])


class InitializeRequest(BaseModel):
    course_id: str


class LectureProgressUpdate(BaseModel):
    time_spent: float = 0
    watch_percentage: Optional[float] = None
    last_watched_position: Optional[float] = None
    is_completed: bool = False


class AttendanceUpdate(BaseModel):
    attended: Optional[bool] = None
    total_seconds: float = 0


class ProjectSubmissionUpdate(BaseModel):
    submission_file: Optional[str] = None
    grade: Optional[float] = None
    reviewer_notes: Optional[str] = None
    user_id: Optional[str] = None  # admins grading a student


@router.post("/initialize")
async def initialize_progress(
    data: InitializeRequest,
    response: Response,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    progress, created = await service.initialize(db, caller.user_id, data.course_id)
    response.status_code = 201 if created else 200
    return progress


@router.get("/me")
async def my_progress(
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    return {"success": True, "progress": await service.list_user_progress(db, caller.user_id)}


@router.get("/course/{course_id}")
async def course_progress(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    return await service.get_course_progress(db, caller.user_id, course_id)


@router.put("/course/{course_id}/lecture/{lecture_id}")
async def update_lecture_progress(
    course_id: str,
    lecture_id: str,
    data: LectureProgressUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    return await service.record_lecture_progress(
        db, caller.user_id, course_id, lecture_id,
        time_spent=data.time_spent,
        watch_percentage=data.watch_percentage,
        last_watched_position=data.last_watched_position,
        is_completed=data.is_completed,
    )


@router.put("/course/{course_id}/attendance/{lecture_id}")
async def mark_attendance(
    course_id: str,
    lecture_id: str,
    data: AttendanceUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    return await service.record_attendance(
        db, caller.user_id, course_id, lecture_id,
        attended=data.attended, total_seconds=data.total_seconds,
    )


@router.put("/course/{course_id}/project/{project_id}")
async def submit_project(
    course_id: str,
    project_id: str,
    data: ProjectSubmissionUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    """Students submit their own work; grade and notes are admin-only"""
    grading = data.grade is not None or data.reviewer_notes or data.user_id
    if grading and not caller.is_admin:
        raise Forbidden("Only admins can grade project submissions")
    if not (data.user_id or caller.user_id):
        raise ValidationError("user_id is required when grading with the admin key")

    return await service.record_project_submission(
        db, data.user_id or caller.user_id, course_id, project_id,
        submission_file=data.submission_file,
        grade=data.grade,
        reviewer_notes=data.reviewer_notes,
    )
