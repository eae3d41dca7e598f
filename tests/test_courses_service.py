"""Tests for course catalog and content authoring against the document store."""

import pytest

from stemelix.courses import service
from stemelix.courses.models import CourseUpdate, ProjectCreate
from stemelix.database import replace_versioned
from stemelix.errors import Conflict, Forbidden, NotFound, Unauthorized

from conftest import YOUTUBE_URL, make_course


class TestCatalog:
    async def test_create_course_sets_slug_and_counters(self, db, course):
        assert course["course_id"].startswith("CRS_")
        assert course["slug"] == "robotics-basics1"
        assert course["enrollment_count"] == 0
        assert course["version"] == 0
        assert course["total_chapters"] == 0
        assert "_id" not in course

    async def test_student_cannot_create(self, db, student):
        _, caller = student
        with pytest.raises(Unauthorized):
            await make_course(db, caller, title="Sneaky")

    async def test_duplicate_slug_conflicts(self, db, admin, course):
        with pytest.raises(Conflict):
            await make_course(db, admin)

    async def test_students_only_see_active_courses(self, db, admin, student):
        _, caller = student
        await make_course(db, admin, title="Live One")
        draft = await make_course(db, admin, title="Draft One", status="draft")

        visible = await service.list_courses(db, caller)
        assert [c["title"] for c in visible] == ["Live One"]
        assert len(await service.list_courses(db, admin)) == 2

        with pytest.raises(Forbidden):
            await service.get_course_by_id(db, caller, draft["course_id"])
        assert (await service.get_course_by_id(db, admin, draft["course_id"]))["title"] == "Draft One"

    async def test_lookup_by_slug_or_title(self, db, admin, course):
        assert (await service.get_course_by_slug(db, None, "robotics-basics1"))["course_id"] == course["course_id"]
        assert (await service.get_course_by_slug(db, None, "Robotics-Basics"))["course_id"] == course["course_id"]
        with pytest.raises(NotFound):
            await service.get_course_by_slug(db, None, "underwater-welding1")

    async def test_slug_lookup_hides_drafts_from_students(self, db, admin, student):
        _, caller = student
        await make_course(db, admin, title="Secret Kit", status="draft")
        with pytest.raises(Forbidden):
            await service.get_course_by_slug(db, caller, "secret-kit1")
        with pytest.raises(Forbidden):
            await service.get_course_by_slug(db, None, "secret-kit1")
        assert (await service.get_course_by_slug(db, admin, "secret-kit1"))["title"] == "Secret Kit"

    async def test_draft_content_is_admin_only(self, db, admin, student):
        _, caller = student
        draft = await make_course(db, admin, title="Draft Tree", status="draft")
        await service.add_chapter(db, admin, draft["course_id"], 1, "Hidden")

        with pytest.raises(Forbidden):
            await service.get_course_content(db, None, draft["course_id"])
        with pytest.raises(Forbidden):
            await service.get_course_content(db, caller, draft["course_id"])
        content = await service.get_course_content(db, admin, draft["course_id"])
        assert content["chapters"][0]["chapter_title"] == "Hidden"

    async def test_category_filter(self, db, admin):
        await make_course(db, admin, title="Junior Kit")
        await make_course(db, admin, title="Master Kit", category="Master")
        courses = await service.list_courses(db, None, category="Master")
        assert [c["title"] for c in courses] == ["Master Kit"]

    async def test_update_course_bumps_version_and_slug(self, db, admin, course):
        updated = await service.update_course(
            db, admin, course["course_id"], CourseUpdate(title="Robotics Advanced", level_number=2)
        )
        assert updated["slug"] == "robotics-advanced2"
        assert updated["version"] == 1

    async def test_delete_course(self, db, admin, course):
        await service.delete_course(db, admin, course["course_id"])
        with pytest.raises(NotFound):
            await service.get_course_by_id(db, admin, course["course_id"])
        with pytest.raises(NotFound):
            await service.delete_course(db, admin, course["course_id"])


class TestContentAuthoring:
    async def test_duplicate_chapter_order_scenario(self, db, admin, course):
        await service.add_chapter(db, admin, course["course_id"], 1, "Intro")
        with pytest.raises(Conflict):
            await service.add_chapter(db, admin, course["course_id"], 1, "Basics")

        content = await service.get_course_content(db, admin, course["course_id"])
        assert content["total_chapters"] == 1
        assert content["chapters"][0]["chapter_title"] == "Intro"

    async def test_student_cannot_author(self, db, student, course):
        _, caller = student
        with pytest.raises(Unauthorized):
            await service.add_chapter(db, caller, course["course_id"], 1, "Intro")

    async def test_missing_course(self, db, admin):
        with pytest.raises(NotFound):
            await service.add_chapter(db, admin, "CRS_MISSING", 1, "Intro")

    async def test_lecture_lifecycle(self, db, admin, course):
        chapter = await service.add_chapter(db, admin, course["course_id"], 1, "Intro")
        lecture = await service.add_lecture(
            db, admin, course["course_id"], chapter["chapter_id"],
            title="Welcome", duration="4:20", order=1, url=YOUTUBE_URL, is_preview_free=True,
        )
        await service.edit_lecture(
            db, admin, course["course_id"], chapter["chapter_id"], lecture["lecture_id"], title="Hello"
        )

        fetched = await service.get_course_by_id(db, None, course["course_id"])
        assert fetched["total_lectures"] == 1
        assert fetched["preview_lectures"][0]["lecture_title"] == "Hello"

        after = await service.delete_lecture(db, admin, course["course_id"], chapter["chapter_id"], lecture["lecture_id"])
        assert after["total_lectures"] == 0

    async def test_stale_write_conflicts(self, db, admin, course):
        stale = await service.load_course(db, course["course_id"])
        await service.add_chapter(db, admin, course["course_id"], 1, "Intro")

        stale["title"] = "Overwritten"
        with pytest.raises(Conflict):
            await replace_versioned(db.courses, {"course_id": course["course_id"]}, stale)
        assert (await service.load_course(db, course["course_id"]))["title"] == "Robotics Basics"


class TestProjects:
    async def test_submit_and_list_own_submissions(self, db, admin, course, student):
        _, caller = student
        project = await service.create_project(
            db, admin, course["course_id"],
            ProjectCreate(project_name="Line follower", project_description="Follow a line", project_upload="https://files/brief.pdf"),
        )
        await service.submit_project(db, caller, course["course_id"], project["project_id"], "https://files/mine.zip")

        submissions = await service.list_user_submissions(db, caller, course["course_id"])
        assert len(submissions) == 1
        assert submissions[0]["status"] == "pending"

        stored = await service.load_course(db, course["course_id"])
        assert stored["version"] == 2

    async def test_submit_unknown_project(self, db, course, student):
        _, caller = student
        with pytest.raises(NotFound):
            await service.submit_project(db, caller, course["course_id"], "PRJ_MISSING", "https://files/x.zip")
