from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from stemelix.auth.guard import CallerContext, get_current_caller, get_current_user
from stemelix.database import get_db
from stemelix.dependencies import get_mailer, get_zoom_client
from stemelix.meetings import service
from stemelix.meetings.models import MeetingCreate, ResendLinkRequest
from stemelix.meetings.zoom import ZoomClient
from stemelix.notifications.mailer import Mailer

router = APIRouter(prefix="/meetings", tags=["Meetings"])


@router.post("", status_code=201)
async def schedule_meeting(
    data: MeetingCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    zoom: ZoomClient = Depends(get_zoom_client),
    mailer: Mailer = Depends(get_mailer)
):
    result = await service.schedule_meeting(db, caller, data, zoom, mailer)
    return {"success": True, "message": "Meeting scheduled successfully", **result}


@router.get("/student/me")
async def my_meetings(
    upcoming: bool = False,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    email = caller.email
    if not email:
        user = await db.users.find_one({"user_id": caller.user_id}, {"email": 1})
        email = user.get("email") if user else None
    meetings = await service.list_student_meetings(db, email, upcoming_only=upcoming)
    return {"success": True, "meetings": meetings, "count": len(meetings)}


@router.get("/course/{course_id}")
async def course_meetings(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    meetings = await service.list_course_meetings(db, course_id)
    if not caller.is_admin:
        for meeting in meetings:
            meeting.pop("start_url", None)
    return {"success": True, "meetings": meetings, "count": len(meetings)}


@router.get("/{meeting_id}")
async def get_meeting(
    meeting_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    meeting = await service.get_meeting(db, meeting_id)
    if not caller.is_admin:
        meeting.pop("start_url", None)
    return {"success": True, "meeting": meeting}


@router.post("/{meeting_id}/cancel")
async def cancel_meeting(
    meeting_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    meeting = await service.cancel_meeting(db, caller, meeting_id)
    return {"success": True, "message": "Meeting cancelled", "meeting": meeting}


@router.post("/{meeting_id}/resend")
async def resend_meeting_link(
    meeting_id: str,
    data: ResendLinkRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    mailer: Mailer = Depends(get_mailer)
):
    result = await service.resend_meeting_link(db, caller, meeting_id, data.email, mailer)
    return {"success": True, "message": "Meeting link sent successfully", **result}
