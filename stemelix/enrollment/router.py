from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from stemelix.auth.guard import CallerContext, get_current_user
from stemelix.database import get_db
from stemelix.enrollment import service

router = APIRouter(prefix="/enrollments", tags=["Enrollment"])


class CourseRef(BaseModel):
    course_id: str


@router.post("", status_code=201)
async def enroll(
    data: CourseRef,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    """Enroll the caller; needs a verified payment for the course"""
    enrollment = await service.enroll(db, caller.user_id, data.course_id)
    return {"success": True, "message": "Enrolled successfully", "enrollment": enrollment}


@router.get("/me")
async def my_enrollments(
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    enrollments = await service.list_enrollments(db, caller.user_id)
    return {"success": True, "enrollments": enrollments, "count": len(enrollments)}


@router.post("/complete")
async def complete_course(
    data: CourseRef,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    result = await service.complete_course(db, caller.user_id, data.course_id)
    return {"success": True, "message": "Course marked as completed", **result}
