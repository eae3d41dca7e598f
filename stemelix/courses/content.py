"""
Course content tree
File: stemelix/courses/content.py

Chapters -> lectures embedded in one course document. Everything here works
on the plain dicts stored in MongoDB; the caller loads the course, mutates
it through CourseContent and writes it back with a version check.

Chapters and lectures are addressed by their authored ids (CH_..., LEC_...),
kept in an id -> position index that is rebuilt after every mutation.
"""

import re
from typing import Dict, List, Optional, Tuple

from stemelix.database import generate_id
from stemelix.errors import Conflict, NotFound, ValidationError

VIDEO_ID = r"(?P<id>[A-Za-z0-9_-]{11})"

VIDEO_URL_PATTERNS = [
    # https://www.youtube.com/watch?v=ID&t=10
    re.compile(r"^(?:https?://)?(?:www\.|m\.)?youtube\.com/watch\?(?:[^#]*&)?v=" + VIDEO_ID + r"(?:[&#].*)?$"),
    # https://youtu.be/ID?si=...
    re.compile(r"^(?:https?://)?(?:www\.)?youtu\.be/" + VIDEO_ID + r"(?:[?#].*)?$"),
    # https://www.youtube.com/embed/ID, /shorts/ID, /live/ID
    re.compile(r"^(?:https?://)?(?:www\.|m\.)?youtube(?:-nocookie)?\.com/(?:embed|shorts|live)/" + VIDEO_ID + r"(?:[?#/].*)?$"),
]

LECTURE_DURATION_PATTERN = re.compile(r"^\d{1,2}:[0-5]\d$")

CHAPTER_TITLE_MAX = 150
LECTURE_TITLE_MAX = 200


def extract_video_id(url: str) -> str:
    """Return the 11-character video id or raise ValidationError"""
    candidate = (url or "").strip()
    for pattern in VIDEO_URL_PATTERNS:
        match = pattern.match(candidate)
        if match:
            return match.group("id")
    raise ValidationError("Invalid video URL, expected a YouTube watch, short or embed link")


def canonical_embed_url(video_id: str) -> str:
    return f"https://www.youtube.com/embed/{video_id}"


def validate_duration_label(label: str) -> str:
    label = (label or "").strip()
    if not LECTURE_DURATION_PATTERN.match(label):
        raise ValidationError("Duration must be in format M:SS or MM:SS")
    return label


def _validate_order(order, what: str) -> int:
    if isinstance(order, bool) or not isinstance(order, int) or order < 1:
        raise ValidationError(f"{what} order must be an integer of at least 1")
    return order


def _validate_title(title: Optional[str], what: str, limit: int) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError(f"{what} title is required")
    if len(title) > limit:
        raise ValidationError(f"{what} title cannot exceed {limit} characters")
    return title


class CourseContent:
    """Ordered chapter/lecture tree with an authored-id index"""

    def __init__(self, chapters: List[dict]):
        self.chapters = chapters
        self._chapter_index: Dict[str, int] = {}
        self._lecture_index: Dict[str, Tuple[int, int]] = {}
        self._reindex()

    @classmethod
    def of(cls, course: dict) -> "CourseContent":
        return cls(course.setdefault("course_content", []))

    def _reindex(self):
        self.chapters.sort(key=lambda ch: ch["chapter_order"])
        self._chapter_index = {}
        self._lecture_index = {}
        for ch_pos, chapter in enumerate(self.chapters):
            chapter["lectures"].sort(key=lambda lec: lec["lecture_order"])
            self._chapter_index[chapter["chapter_id"]] = ch_pos
            for lec_pos, lecture in enumerate(chapter["lectures"]):
                self._lecture_index[lecture["lecture_id"]] = (ch_pos, lec_pos)

    # ==================== LOOKUPS ====================

    def chapter(self, chapter_id: str) -> dict:
        pos = self._chapter_index.get(chapter_id)
        if pos is None:
            raise NotFound("Chapter not found", chapter_id=chapter_id)
        return self.chapters[pos]

    def lecture(self, chapter_id: str, lecture_id: str) -> dict:
        chapter = self.chapter(chapter_id)
        located = self._lecture_index.get(lecture_id)
        if located is None or self.chapters[located[0]] is not chapter:
            raise NotFound("Lecture not found", lecture_id=lecture_id)
        return chapter["lectures"][located[1]]

    def find_lecture(self, lecture_id: str) -> Optional[dict]:
        located = self._lecture_index.get(lecture_id)
        if located is None:
            return None
        ch_pos, lec_pos = located
        return self.chapters[ch_pos]["lectures"][lec_pos]

    # ==================== CHAPTERS ====================

    def _check_chapter_order(self, order: int, ignore_id: str = None):
        for chapter in self.chapters:
            if chapter["chapter_order"] == order and chapter["chapter_id"] != ignore_id:
                raise Conflict("Chapter order already exists", chapter_order=order)

    def add_chapter(self, order: int, title: str) -> dict:
        order = _validate_order(order, "Chapter")
        title = _validate_title(title, "Chapter", CHAPTER_TITLE_MAX)
        self._check_chapter_order(order)

        chapter = {
            "chapter_id": generate_id("CH"),
            "chapter_order": order,
            "chapter_title": title,
            "lectures": [],
        }
        self.chapters.append(chapter)
        self._reindex()
        return chapter

    def edit_chapter(self, chapter_id: str, title: str = None, order: int = None) -> dict:
        if title is None and order is None:
            raise ValidationError("Nothing to update")
        chapter = self.chapter(chapter_id)
        if order is not None:
            order = _validate_order(order, "Chapter")
            self._check_chapter_order(order, ignore_id=chapter_id)
        if title is not None:
            chapter["chapter_title"] = _validate_title(title, "Chapter", CHAPTER_TITLE_MAX)
        if order is not None:
            chapter["chapter_order"] = order
        self._reindex()
        return chapter

    def delete_chapter(self, chapter_id: str) -> dict:
        pos = self._chapter_index.get(chapter_id)
        if pos is None:
            raise NotFound("Chapter not found", chapter_id=chapter_id)
        removed = self.chapters.pop(pos)
        self._reindex()
        return removed

    # ==================== LECTURES ====================

    @staticmethod
    def _check_lecture_order(chapter: dict, order: int, ignore_id: str = None):
        for lecture in chapter["lectures"]:
            if lecture["lecture_order"] == order and lecture["lecture_id"] != ignore_id:
                raise Conflict("Lecture order already exists in this chapter", lecture_order=order)

    def add_lecture(self, chapter_id: str, title: str, duration: str, order: int,
                    url: str, is_preview_free: bool = False) -> dict:
        chapter = self.chapter(chapter_id)
        order = _validate_order(order, "Lecture")
        self._check_lecture_order(chapter, order)
        title = _validate_title(title, "Lecture", LECTURE_TITLE_MAX)
        duration = validate_duration_label(duration)
        video_id = extract_video_id(url)

        lecture = {
            "lecture_id": generate_id("LEC"),
            "lecture_title": title,
            "lecture_duration": duration,
            "lecture_url": canonical_embed_url(video_id),
            "youtube_data": {"video_id": video_id, "is_unlisted": True},
            "is_preview_free": bool(is_preview_free),
            "lecture_order": order,
        }
        chapter["lectures"].append(lecture)
        self._reindex()
        return lecture

    def edit_lecture(self, chapter_id: str, lecture_id: str, title: str = None,
                     duration: str = None, order: int = None, url: str = None,
                     is_preview_free: bool = None) -> dict:
        chapter = self.chapter(chapter_id)
        lecture = self.lecture(chapter_id, lecture_id)

        # Validate everything before touching the lecture
        if order is not None:
            order = _validate_order(order, "Lecture")
            self._check_lecture_order(chapter, order, ignore_id=lecture_id)
        if title is not None:
            title = _validate_title(title, "Lecture", LECTURE_TITLE_MAX)
        if duration is not None:
            duration = validate_duration_label(duration)
        video_id = extract_video_id(url) if url is not None else None

        if title is not None:
            lecture["lecture_title"] = title
        if duration is not None:
            lecture["lecture_duration"] = duration
        if order is not None:
            lecture["lecture_order"] = order
        if video_id is not None:
            lecture["lecture_url"] = canonical_embed_url(video_id)
            lecture["youtube_data"] = {"video_id": video_id, "is_unlisted": True}
        if is_preview_free is not None:
            lecture["is_preview_free"] = bool(is_preview_free)
        self._reindex()
        return lecture

    def delete_lecture(self, chapter_id: str, lecture_id: str) -> dict:
        chapter = self.chapter(chapter_id)
        self.lecture(chapter_id, lecture_id)
        _, lec_pos = self._lecture_index[lecture_id]
        removed = chapter["lectures"].pop(lec_pos)
        self._reindex()
        return removed

    # ==================== DERIVED VIEW ====================

    @property
    def total_chapters(self) -> int:
        return len(self.chapters)

    @property
    def total_lectures(self) -> int:
        return sum(len(ch["lectures"]) for ch in self.chapters)

    def preview_lectures(self) -> List[dict]:
        previews = []
        for chapter in self.chapters:
            for lecture in chapter["lectures"]:
                if lecture.get("is_preview_free"):
                    previews.append({
                        "lecture_id": lecture["lecture_id"],
                        "lecture_title": lecture["lecture_title"],
                        "chapter_title": chapter["chapter_title"],
                        "lecture_url": lecture["lecture_url"],
                    })
        return previews

    def summary(self) -> dict:
        return {
            "total_chapters": self.total_chapters,
            "total_lectures": self.total_lectures,
            "preview_lectures": self.preview_lectures(),
        }
