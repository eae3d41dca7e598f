from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class MeetingStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MeetingCreate(BaseModel):
    topic: str
    description: str = ""
    start_time: datetime
    duration: int = Field(..., description="Minutes")
    teacher_name: str
    teacher_email: str
    student_emails: List[str]
    course_id: Optional[str] = None
    course_name: Optional[str] = None


class ResendLinkRequest(BaseModel):
    email: str
