import re
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

# ==================== ENUMS ====================

class CourseCategory(str, Enum):
    JUNIOR = "Junior"
    EXPLORER = "Explorer"
    MASTER = "Master"

class CourseStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"

class SubmissionStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


COURSE_DURATION_PATTERN = re.compile(
    r"^\d+(\.\d+)?\s*(hour|hours|minute|minutes|day|days|week|weeks)$", re.IGNORECASE
)
IMAGE_URL_PATTERN = re.compile(r"^https?://.+\.(jpg|jpeg|png|webp|gif)$", re.IGNORECASE)

# ==================== COURSE MODELS ====================

class GradeRange(BaseModel):
    min: int = Field(..., ge=1, le=12)
    max: int = Field(..., ge=1, le=12)

    @model_validator(mode="after")
    def check_order(self):
        if self.max < self.min:
            raise ValueError("Maximum grade must be greater than or equal to minimum grade")
        return self

class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    category: CourseCategory
    level_number: int = Field(..., ge=1, le=10)
    description: str = Field(..., min_length=1, max_length=2000)
    duration: str
    grade_range: GradeRange
    price: float = Field(..., ge=0)
    thumbnail_url: Optional[str] = None
    status: CourseStatus = CourseStatus.DRAFT
    featured: bool = False
    order: int = 0
    tags: List[str] = []

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if not COURSE_DURATION_PATTERN.match(v.strip()):
            raise ValueError('Duration must be in format like "2 hours" or "30 minutes"')
        return v.strip()

    @field_validator("thumbnail_url")
    @classmethod
    def validate_thumbnail(cls, v):
        if v and not IMAGE_URL_PATTERN.match(v):
            raise ValueError("Course thumbnail must be a valid image URL")
        return v

class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[CourseCategory] = None
    level_number: Optional[int] = Field(None, ge=1, le=10)
    description: Optional[str] = Field(None, max_length=2000)
    duration: Optional[str] = None
    grade_range: Optional[GradeRange] = None
    price: Optional[float] = Field(None, ge=0)
    thumbnail_url: Optional[str] = None
    status: Optional[CourseStatus] = None
    featured: Optional[bool] = None
    order: Optional[int] = None
    tags: Optional[List[str]] = None

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and not COURSE_DURATION_PATTERN.match(v.strip()):
            raise ValueError('Duration must be in format like "2 hours" or "30 minutes"')
        return v

# ==================== CONTENT MODELS ====================

class ChapterCreate(BaseModel):
    chapter_order: int
    chapter_title: str

class ChapterUpdate(BaseModel):
    chapter_order: Optional[int] = None
    chapter_title: Optional[str] = None

class LectureCreate(BaseModel):
    lecture_title: str
    lecture_duration: str  # "M:SS" or "MM:SS"
    lecture_order: int
    lecture_url: str
    is_preview_free: bool = False

class LectureUpdate(BaseModel):
    lecture_title: Optional[str] = None
    lecture_duration: Optional[str] = None
    lecture_order: Optional[int] = None
    lecture_url: Optional[str] = None
    is_preview_free: Optional[bool] = None

# ==================== PROJECT MODELS ====================

class ProjectCreate(BaseModel):
    project_name: str = Field(..., min_length=1, max_length=100)
    project_description: str = Field(..., min_length=1, max_length=1000)
    project_upload: str  # brief / starter file URL

class ProjectSubmit(BaseModel):
    submission_file: str
