"""
Live class scheduling
File: stemelix/meetings/service.py

The Zoom meeting is created first; the local record is only written once
Zoom returned a join link. Student invites are best-effort and reported as
sent/failed counts.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from stemelix import config
from stemelix.auth.guard import CallerContext, require_admin
from stemelix.common.audit import log_audit
from stemelix.database import generate_id, serialize_mongo
from stemelix.errors import Internal, InvalidState, NotFound, Unauthorized, ValidationError
from stemelix.meetings.models import MeetingCreate, MeetingStatus
from stemelix.meetings.zoom import ZoomClient
from stemelix.notifications.mailer import Mailer, meeting_invite_email

logger = logging.getLogger(__name__)


def _as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def validate_meeting(data: MeetingCreate) -> datetime:
    missing = []
    if not data.topic.strip():
        missing.append("topic")
    if not data.teacher_name.strip():
        missing.append("teacher_name")
    if not data.teacher_email.strip():
        missing.append("teacher_email")
    if not [e for e in data.student_emails if e.strip()]:
        missing.append("student_emails")
    if missing:
        raise ValidationError("Missing required fields", missing_fields=missing)

    start_time = _as_utc_naive(data.start_time)
    if start_time <= datetime.utcnow():
        raise ValidationError("Meeting must be scheduled for a future date/time")
    if not config.MEETING_MIN_MINUTES <= data.duration <= config.MEETING_MAX_MINUTES:
        raise ValidationError(
            "Duration must be between 15 minutes and 24 hours",
            min_minutes=config.MEETING_MIN_MINUTES,
            max_minutes=config.MEETING_MAX_MINUTES,
        )
    return start_time


async def notify_students(db: AsyncIOMotorDatabase, meeting: dict, mailer: Mailer) -> dict:
    results = {"success": 0, "failed": 0, "failed_emails": []}
    start_label = meeting["start_time"].strftime("%B %d, %Y %H:%M UTC")

    for student in meeting["enrolled_students"]:
        html = meeting_invite_email(
            student["name"], meeting["topic"], start_label,
            meeting["duration"], meeting["join_url"], meeting["teacher_name"],
        )
        if await mailer.send(student["email"], f"Class scheduled: {meeting['topic']}", html):
            student["email_sent"] = True
            results["success"] += 1
        else:
            results["failed"] += 1
            results["failed_emails"].append(student["email"])

    await db.meetings.update_one(
        {"meeting_id": meeting["meeting_id"]},
        {"$set": {"enrolled_students": meeting["enrolled_students"]}},
    )
    return results


async def schedule_meeting(db: AsyncIOMotorDatabase, caller: CallerContext, data: MeetingCreate,
                           zoom: ZoomClient, mailer: Mailer) -> dict:
    require_admin(caller)
    start_time = validate_meeting(data)

    zoom_meeting = await zoom.create_meeting(data.topic.strip(), start_time, data.duration)

    students = []
    seen = set()
    for email in data.student_emails:
        email = email.strip().lower()
        if email and email not in seen:
            seen.add(email)
            students.append({"email": email, "name": email.split("@")[0], "email_sent": False})

    meeting = {
        "meeting_id": generate_id("MTG"),
        "topic": data.topic.strip(),
        "description": data.description.strip(),
        "start_time": start_time,
        "duration": data.duration,
        "join_url": zoom_meeting["join_url"],
        "start_url": zoom_meeting.get("start_url", ""),
        "zoom_meeting_id": str(zoom_meeting["id"]),
        "teacher_name": data.teacher_name.strip(),
        "teacher_email": data.teacher_email.strip().lower(),
        "owner_user_id": caller.user_id,
        "course_id": data.course_id or "",
        "course_name": (data.course_name or "").strip() or "General Class",
        "enrolled_students": students,
        "status": MeetingStatus.SCHEDULED.value,
        "created_at": datetime.utcnow(),
    }
    await db.meetings.insert_one(meeting)
    await log_audit(db, caller, "schedule_meeting", "meeting", meeting["meeting_id"])
    logger.info("Meeting %s scheduled for %s", meeting["meeting_id"], start_time)

    emails = await notify_students(db, meeting, mailer)
    return {
        "meeting": serialize_mongo(meeting),
        "enrolled_students_count": len(students),
        "emails_sent": emails["success"],
        "emails_failed": emails["failed"],
        "failed_emails": emails["failed_emails"],
    }


async def get_meeting(db: AsyncIOMotorDatabase, meeting_id: str) -> dict:
    meeting = await db.meetings.find_one({"meeting_id": meeting_id})
    if not meeting:
        raise NotFound("Meeting not found", meeting_id=meeting_id)
    return serialize_mongo(meeting)


async def list_course_meetings(db: AsyncIOMotorDatabase, course_id: str) -> List[dict]:
    cursor = db.meetings.find({"course_id": course_id}).sort("start_time", 1)
    return [serialize_mongo(m) for m in await cursor.to_list(length=None)]


async def list_student_meetings(db: AsyncIOMotorDatabase, email: Optional[str],
                                upcoming_only: bool = False) -> List[dict]:
    if not email:
        raise ValidationError("Student email is required")
    query = {"enrolled_students.email": email.strip().lower(), "status": {"$ne": MeetingStatus.CANCELLED.value}}
    if upcoming_only:
        query["start_time"] = {"$gte": datetime.utcnow()}
    cursor = db.meetings.find(query, {"start_url": 0}).sort("start_time", 1)
    return [serialize_mongo(m) for m in await cursor.to_list(length=None)]


async def cancel_meeting(db: AsyncIOMotorDatabase, caller: CallerContext, meeting_id: str) -> dict:
    require_admin(caller)
    meeting = await get_meeting(db, meeting_id)
    if meeting["status"] == MeetingStatus.CANCELLED.value:
        raise InvalidState("Meeting is already cancelled", current_status=meeting["status"])

    result = await db.meetings.update_one(
        {"meeting_id": meeting_id, "status": meeting["status"]},
        {"$set": {"status": MeetingStatus.CANCELLED.value, "cancelled_at": datetime.utcnow()}},
    )
    if result.modified_count == 0:
        raise InvalidState("Meeting was modified concurrently, reload and try again")
    await log_audit(db, caller, "cancel_meeting", "meeting", meeting_id)
    return await get_meeting(db, meeting_id)


async def resend_meeting_link(db: AsyncIOMotorDatabase, caller: CallerContext, meeting_id: str,
                              email: str, mailer: Mailer) -> dict:
    """Re-send the join link to one invited student; students may only ask for their own"""
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Student email is required")
    if not caller.is_admin and (caller.email or "").lower() != email:
        raise Unauthorized("Unauthorized Access")

    meeting = await get_meeting(db, meeting_id)
    if meeting["status"] == MeetingStatus.CANCELLED.value:
        raise InvalidState("Meeting is cancelled", current_status=meeting["status"])
    student = next((s for s in meeting["enrolled_students"] if s["email"] == email), None)
    if student is None:
        raise NotFound("Student not found in this meeting", email=email)

    html = meeting_invite_email(
        student["name"], meeting["topic"], meeting["start_time"].strftime("%B %d, %Y %H:%M UTC"),
        meeting["duration"], meeting["join_url"], meeting["teacher_name"],
    )
    if not await mailer.send(email, f"Meeting link: {meeting['topic']}", html):
        raise Internal("Failed to resend meeting link", email=email)

    await db.meetings.update_one(
        {"meeting_id": meeting_id, "enrolled_students.email": email},
        {"$set": {"enrolled_students.$.email_sent": True}},
    )
    logger.info("Meeting link for %s resent to %s", meeting_id, email)
    return {"meeting_id": meeting_id, "email": email, "email_sent": True}
