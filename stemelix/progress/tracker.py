"""
Per-(user, course) progress document
File: stemelix/progress/tracker.py

The progress document is a projection of the course content tree taken when
the student first opens the course. ProgressTracker mutates the plain dict
in place; the service layer persists it with a version check.

overall_progress = round(mean(lecture %, chapter %, attendance %, project %)),
where a term with an empty denominator counts as 0.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from stemelix.courses.content import CourseContent
from stemelix.errors import NotFound, ValidationError

FIRST_LECTURE = "first_lecture"
CHAPTER_COMPLETE = "chapter_complete"
COURSE_COMPLETE = "course_complete"


def _percent(done: int, total: int) -> float:
    return (done / total) * 100 if total else 0


def calculate_overall_progress(progress: dict) -> int:
    chapters = progress.get("chapters", [])
    lectures = [lec for ch in chapters for lec in ch["lectures"]]
    attendance = progress.get("attendance", [])
    projects = progress.get("projects", [])

    lecture_completion = _percent(sum(1 for lec in lectures if lec["is_completed"]), len(lectures))
    chapter_completion = _percent(sum(1 for ch in chapters if ch["is_completed"]), len(chapters))
    attendance_completion = _percent(sum(1 for a in attendance if a["attended"]), len(attendance))
    project_completion = _percent(sum(1 for p in projects if p["submitted"]), len(projects))

    overall = (lecture_completion + chapter_completion + attendance_completion + project_completion) / 4
    return round(overall)


def build_progress_skeleton(user_id: str, course_id: str, course: dict) -> dict:
    """Zeroed progress document mirroring every chapter, lecture and project id"""
    content = CourseContent.of(course)
    chapters = [
        {
            "chapter_id": ch["chapter_id"],
            "is_completed": False,
            "completed_lectures": 0,
            "total_lectures": len(ch["lectures"]),
            "completion_percentage": 0,
            "time_spent": 0,
            "lectures": [
                {
                    "lecture_id": lec["lecture_id"],
                    "is_completed": False,
                    "time_spent": 0,
                    "completed_at": None,
                    "watch_percentage": 0,
                    "last_watched_position": 0,
                }
                for lec in ch["lectures"]
            ],
        }
        for ch in content.chapters
    ]
    projects = [
        {
            "project_id": p["project_id"],
            "submitted": False,
            "submission_file": None,
            "submitted_at": None,
            "grade": None,
            "reviewer_notes": None,
        }
        for p in course.get("projects", [])
    ]

    now = datetime.utcnow()
    return {
        "user_id": user_id,
        "course_id": course_id,
        "overall_progress": 0,
        "is_completed": False,
        "completed_at": None,
        "total_time_spent": 0,
        "chapters": chapters,
        "attendance": [],
        "projects": projects,
        "milestones": [],
        "last_accessed_date": now,
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }


def _non_negative(value, name: str):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError(f"{name} must be a non-negative number")
    return value


class ProgressTracker:
    def __init__(self, progress: dict):
        self.progress = progress
        self._lecture_index: Dict[str, Tuple[int, int]] = {}
        for ch_pos, chapter in enumerate(progress["chapters"]):
            for lec_pos, lecture in enumerate(chapter["lectures"]):
                self._lecture_index[lecture["lecture_id"]] = (ch_pos, lec_pos)

    def _milestone(self, kind: str, chapter_id: str = None, lecture_id: str = None):
        self.progress["milestones"].append({
            "type": kind,
            "achieved_at": datetime.utcnow(),
            "chapter_id": chapter_id,
            "lecture_id": lecture_id,
        })

    def _has_completed_lecture(self) -> bool:
        return any(lec["is_completed"] for ch in self.progress["chapters"] for lec in ch["lectures"])

    def recalculate(self) -> int:
        progress = self.progress
        progress["overall_progress"] = calculate_overall_progress(progress)
        if progress["overall_progress"] >= 100 and not progress["is_completed"]:
            progress["is_completed"] = True
            progress["completed_at"] = datetime.utcnow()
            self._milestone(COURSE_COMPLETE)
        return progress["overall_progress"]

    # ==================== LECTURES ====================

    def record_lecture(self, lecture_id: str, time_spent: float = 0, watch_percentage: float = None,
                       last_watched_position: float = None, is_completed: bool = False) -> dict:
        time_spent = _non_negative(time_spent, "time_spent") or 0
        watch_percentage = _non_negative(watch_percentage, "watch_percentage")
        if watch_percentage is not None and watch_percentage > 100:
            raise ValidationError("watch_percentage cannot exceed 100")
        last_watched_position = _non_negative(last_watched_position, "last_watched_position")

        located = self._lecture_index.get(lecture_id)
        if located is None:
            raise NotFound("Lecture not found in progress", lecture_id=lecture_id)
        chapter = self.progress["chapters"][located[0]]
        lecture = chapter["lectures"][located[1]]

        lecture["time_spent"] += time_spent
        chapter["time_spent"] += time_spent
        self.progress["total_time_spent"] += time_spent
        if watch_percentage is not None:
            lecture["watch_percentage"] = max(lecture["watch_percentage"], watch_percentage)
        if last_watched_position is not None:
            lecture["last_watched_position"] = last_watched_position

        if is_completed and not lecture["is_completed"]:
            if not self._has_completed_lecture():
                self._milestone(FIRST_LECTURE, chapter["chapter_id"], lecture_id)
            lecture["is_completed"] = True
            lecture["completed_at"] = datetime.utcnow()
            chapter["completed_lectures"] += 1
            chapter["completion_percentage"] = _percent(chapter["completed_lectures"], chapter["total_lectures"])
            if chapter["completed_lectures"] == chapter["total_lectures"] and not chapter["is_completed"]:
                chapter["is_completed"] = True
                self._milestone(CHAPTER_COMPLETE, chapter["chapter_id"])

        self.progress["last_accessed_date"] = datetime.utcnow()
        self.recalculate()
        return lecture

    # ==================== ATTENDANCE ====================

    def record_attendance(self, lecture_id: str, attended: Optional[bool] = None,
                          total_seconds: float = 0) -> dict:
        if not lecture_id:
            raise ValidationError("lecture_id is required")
        total_seconds = _non_negative(total_seconds, "total_seconds") or 0

        attendance: List[dict] = self.progress["attendance"]
        entry = next((a for a in attendance if a["lecture_id"] == lecture_id), None)
        if entry is None:
            entry = {"lecture_id": lecture_id, "attended": bool(attended), "total_seconds": total_seconds}
            attendance.append(entry)
        else:
            if attended is not None:
                entry["attended"] = attended
            entry["total_seconds"] += total_seconds

        self.progress["last_accessed_date"] = datetime.utcnow()
        self.recalculate()
        return entry

    # ==================== PROJECTS ====================

    def record_project(self, project_id: str, submission_file: str = None,
                       grade: float = None, reviewer_notes: str = None) -> dict:
        project = next((p for p in self.progress["projects"] if p["project_id"] == project_id), None)
        if project is None:
            raise NotFound("Project not found", project_id=project_id)
        if not submission_file and not project.get("submission_file"):
            raise ValidationError("submission_file is required")
        if grade is not None:
            grade = _non_negative(grade, "grade")
            if grade > 100:
                raise ValidationError("grade must be between 0 and 100")

        project["submitted"] = True
        project["submission_file"] = submission_file or project["submission_file"]
        project["submitted_at"] = datetime.utcnow()
        if grade is not None:
            project["grade"] = grade
        if reviewer_notes:
            project["reviewer_notes"] = reviewer_notes

        self.progress["last_accessed_date"] = datetime.utcnow()
        self.recalculate()
        return project
