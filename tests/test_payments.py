"""Tests for the manual payment review state machine."""

import pytest

from stemelix import config
from stemelix.errors import Conflict, Forbidden, InvalidState, NotFound, Unauthorized, ValidationError
from stemelix.payments import service

from conftest import PNG_BYTES, FakeMailer, FakeRenderer, make_student


async def submit(db, user, course, amount=2999, screenshot=PNG_BYTES, content_type="image/png"):
    return await service.create_payment(
        db, user["user_id"], course["course_id"], amount, screenshot, content_type,
        filename="proof.png", ip="127.0.0.1", user_agent="pytest",
    )


class TestCreatePayment:
    async def test_created_pending_without_bytes(self, db, student, course):
        user, _ = student
        payment = await submit(db, user, course)

        assert payment["status"] == "pending"
        assert payment["order_id"].startswith("ORD_")
        assert payment["currency"] == "INR"
        assert payment["screenshot"] == {"content_type": "image/png", "filename": "proof.png", "size": len(PNG_BYTES)}
        assert payment["request_meta"] == {"ip": "127.0.0.1", "user_agent": "pytest"}

        stored = await db.payments.find_one({"payment_id": payment["payment_id"]})
        assert bytes(stored["screenshot"]["content"]) == PNG_BYTES

    async def test_duplicate_pending_conflicts(self, db, student, course):
        user, _ = student
        first = await submit(db, user, course)
        with pytest.raises(Conflict) as exc:
            await submit(db, user, course)
        assert exc.value.extra["payment_id"] == first["payment_id"]

    async def test_resubmission_after_rejection_allowed(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        first = await submit(db, user, course)
        await service.verify_payment(db, admin, first["payment_id"], "reject", mailer, renderer,
                                     rejection_reason="Blurry screenshot")
        second = await submit(db, user, course)
        assert second["status"] == "pending"

    async def test_missing_fields(self, db, student, course):
        user, _ = student
        with pytest.raises(ValidationError) as exc:
            await submit(db, user, course, screenshot=b"")
        assert exc.value.extra["missing_fields"] == ["screenshot"]

    async def test_rejects_non_images_and_oversize(self, db, student, course, monkeypatch):
        user, _ = student
        with pytest.raises(ValidationError):
            await submit(db, user, course, content_type="application/pdf")

        monkeypatch.setattr(config, "MAX_SCREENSHOT_BYTES", 10)
        with pytest.raises(ValidationError):
            await submit(db, user, course)

    async def test_amount_must_be_positive(self, db, student, course):
        user, _ = student
        with pytest.raises(ValidationError):
            await submit(db, user, course, amount=0)

    async def test_unknown_user_or_course(self, db, student, course):
        user, _ = student
        with pytest.raises(NotFound):
            await submit(db, {"user_id": "USR_MISSING"}, course)
        with pytest.raises(NotFound):
            await submit(db, user, {"course_id": "CRS_MISSING"})


class TestVerifyPayment:
    async def test_verify_enrolls_and_emails_invoice(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)

        result = await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                              gpay_transaction_id="TXN123")

        assert result["payment"]["status"] == "verified"
        assert result["payment"]["gpay_transaction_id"] == "TXN123"
        assert result["payment"]["verified_at"] is not None
        assert result["payment"]["paid_at"] is not None
        assert result["enrolled"] is True
        assert result["partial_success"] is False

        stored_user = await db.users.find_one({"user_id": user["user_id"]})
        assert stored_user["total_courses_enrolled"] == 1
        assert len(stored_user["courses_enrolled"]) == 1
        entry = stored_user["courses_enrolled"][0]
        assert entry["course_id"] == course["course_id"]
        assert entry["payment_id"] == payment["payment_id"]
        assert entry["status"] == "in-progress"

        stored_course = await db.courses.find_one({"course_id": course["course_id"]})
        assert stored_course["enrollment_count"] == 1

        assert renderer.rendered[0].transaction_id == "TXN123"
        assert renderer.rendered[0].order_id == payment["order_id"]
        assert mailer.sent[0]["to"] == "asha@example.com"
        assert mailer.sent[0]["attachment"].filename == f"invoice-{payment['order_id']}.pdf"

    async def test_cannot_review_twice(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)
        await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                     gpay_transaction_id="TXN123")

        with pytest.raises(InvalidState):
            await service.verify_payment(db, admin, payment["payment_id"], "reject", mailer, renderer,
                                         rejection_reason="Oops")
        with pytest.raises(InvalidState):
            await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                         gpay_transaction_id="TXN999")

        stored = await db.payments.find_one({"payment_id": payment["payment_id"]})
        assert stored["status"] == "verified"
        assert stored["gpay_transaction_id"] == "TXN123"

    async def test_rejected_is_terminal(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)
        result = await service.verify_payment(db, admin, payment["payment_id"], "reject", mailer, renderer,
                                              rejection_reason="Amount mismatch")
        assert result["payment"]["status"] == "rejected"
        assert result["payment"]["failure_reason"] == "Amount mismatch"
        assert mailer.sent == []

        with pytest.raises(InvalidState):
            await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                         gpay_transaction_id="TXN123")
        stored_user = await db.users.find_one({"user_id": user["user_id"]})
        assert stored_user["courses_enrolled"] == []

    async def test_action_specific_fields_required(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)
        with pytest.raises(ValidationError):
            await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer)
        with pytest.raises(ValidationError):
            await service.verify_payment(db, admin, payment["payment_id"], "reject", mailer, renderer)
        with pytest.raises(ValidationError):
            await service.verify_payment(db, admin, payment["payment_id"], "refund", mailer, renderer)
        with pytest.raises(ValidationError):
            await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                         gpay_transaction_id="   ")
        with pytest.raises(ValidationError):
            await service.verify_payment(db, admin, payment["payment_id"], "reject", mailer, renderer,
                                         rejection_reason=" \t ")

        stored = await db.payments.find_one({"payment_id": payment["payment_id"]})
        assert stored["status"] == "pending"

    async def test_admin_only(self, db, student, course, mailer, renderer):
        user, caller = student
        payment = await submit(db, user, course)
        with pytest.raises(Unauthorized):
            await service.verify_payment(db, caller, payment["payment_id"], "verify", mailer, renderer,
                                         gpay_transaction_id="TXN123")

    async def test_missing_payment(self, db, admin, mailer, renderer):
        with pytest.raises(NotFound):
            await service.verify_payment(db, admin, "PAY_MISSING", "verify", mailer, renderer,
                                         gpay_transaction_id="TXN123")

    @pytest.mark.parametrize("mailer_, renderer_", [
        (FakeMailer(succeed=False), FakeRenderer()),
        (FakeMailer(error=RuntimeError("smtp down")), FakeRenderer()),
        (FakeMailer(), FakeRenderer(error=RuntimeError("font missing"))),
    ])
    async def test_notification_failure_is_partial_success(self, db, admin, student, course, mailer_, renderer_):
        user, _ = student
        payment = await submit(db, user, course)

        result = await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer_, renderer_,
                                              gpay_transaction_id="TXN123")

        assert result["partial_success"] is True
        assert result["notification"]["sent"] is False
        assert result["notification"]["error"]

        stored = await db.payments.find_one({"payment_id": payment["payment_id"]})
        assert stored["status"] == "verified"
        assert stored["notification"]["sent"] is False
        stored_user = await db.users.find_one({"user_id": user["user_id"]})
        assert stored_user["total_courses_enrolled"] == 1

    async def test_already_enrolled_user_is_not_counted_twice(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        await db.users.update_one(
            {"user_id": user["user_id"]},
            {"$push": {"courses_enrolled": {"course_id": course["course_id"], "status": "in-progress"}},
             "$set": {"total_courses_enrolled": 1}},
        )
        payment = await submit(db, user, course)
        result = await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                              gpay_transaction_id="TXN123")

        assert result["enrolled"] is False
        stored_user = await db.users.find_one({"user_id": user["user_id"]})
        assert stored_user["total_courses_enrolled"] == 1
        assert len(stored_user["courses_enrolled"]) == 1


class TestReconcile:
    async def test_reenrolls_after_interrupted_verify(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)
        # Payment verified but the enrollment write never happened
        await db.payments.update_one({"payment_id": payment["payment_id"]}, {"$set": {"status": "verified"}})

        first = await service.reconcile_payment(db, admin, payment["payment_id"], mailer, renderer)
        second = await service.reconcile_payment(db, admin, payment["payment_id"], mailer, renderer)

        assert first["enrolled"] is True
        assert second["enrolled"] is False
        stored_user = await db.users.find_one({"user_id": user["user_id"]})
        assert len(stored_user["courses_enrolled"]) == 1
        assert mailer.sent == []

    async def test_resend_invoice(self, db, admin, student, course, renderer):
        user, _ = student
        payment = await submit(db, user, course)
        await service.verify_payment(db, admin, payment["payment_id"], "verify", FakeMailer(succeed=False), renderer,
                                     gpay_transaction_id="TXN123")

        mailer = FakeMailer()
        result = await service.reconcile_payment(db, admin, payment["payment_id"], mailer, renderer,
                                                 resend_invoice=True)
        assert result["notification"]["sent"] is True
        assert len(mailer.sent) == 1

    async def test_pending_cannot_be_reconciled(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)
        with pytest.raises(InvalidState):
            await service.reconcile_payment(db, admin, payment["payment_id"], mailer, renderer)


class TestQueries:
    async def test_owner_or_admin_can_read(self, db, admin, student, course):
        user, caller = student
        payment = await submit(db, user, course)
        _, other = await make_student(db, "Ravi", "ravi@example.com")

        assert (await service.get_payment(db, caller, payment["payment_id"]))["payment_id"] == payment["payment_id"]
        assert (await service.get_payment(db, admin, payment["payment_id"]))["status"] == "pending"
        with pytest.raises(Forbidden):
            await service.get_payment(db, other, payment["payment_id"])

    async def test_screenshot_is_admin_only(self, db, admin, student, course):
        user, caller = student
        payment = await submit(db, user, course)
        content, content_type, filename = await service.get_payment_screenshot(db, admin, payment["payment_id"])
        assert content == PNG_BYTES
        assert content_type == "image/png"
        assert filename == "proof.png"
        with pytest.raises(Unauthorized):
            await service.get_payment_screenshot(db, caller, payment["payment_id"])

    async def test_admin_queue_joins_names(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)

        queue = await service.list_payments(db, admin, status="pending")
        assert len(queue) == 1
        assert queue[0]["user"] == {"name": "Asha", "email": "asha@example.com"}
        assert queue[0]["course_title"] == "Robotics Basics"
        assert "content" not in queue[0]["screenshot"]

        await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                     gpay_transaction_id="TXN123")
        assert await service.list_payments(db, admin, status="pending") == []
        assert len(await service.list_user_payments(db, user["user_id"])) == 1

    async def test_review_is_audited(self, db, admin, student, course, mailer, renderer):
        user, _ = student
        payment = await submit(db, user, course)
        await service.verify_payment(db, admin, payment["payment_id"], "verify", mailer, renderer,
                                     gpay_transaction_id="TXN123")

        trail = await service.get_payment_audit(db, admin, payment["payment_id"])
        assert [entry["action"] for entry in trail] == ["verify_payment"]
        assert trail[0]["actor_user_id"] == "USR_ADMIN"
