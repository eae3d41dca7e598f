"""
Manual payment verification
File: stemelix/payments/service.py

Flow:
1. Student uploads a payment screenshot -> payment is `pending`
2. Admin reviews it -> `verified` or `rejected` (both terminal)
3. On verify the student is enrolled, then an invoice is emailed

Step 3 is phase 2: it runs only after the status flip is committed and its
failure is reported as a partial success, never undone.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from stemelix import config
from stemelix.auth.guard import CallerContext, require_admin
from stemelix.common.audit import get_audit_trail, log_audit
from stemelix.database import generate_id, serialize_mongo
from stemelix.enrollment.service import ensure_enrolled
from stemelix.errors import (
    Conflict, Forbidden, InvalidState, NotFound, ValidationError, require_fields
)
from stemelix.notifications.invoice import InvoiceData, InvoiceRenderer
from stemelix.notifications.mailer import Attachment, Mailer, payment_verified_email
from stemelix.payments.models import ACTIVE_STATUSES, PaymentStatus, ReviewAction

logger = logging.getLogger(__name__)

NO_SCREENSHOT = {"screenshot.content": 0}


def public_payment(payment: dict) -> dict:
    """Payment as returned to clients: screenshot metadata only, never the bytes"""
    payment = serialize_mongo(payment)
    screenshot = payment.get("screenshot") or {}
    payment["screenshot"] = {k: v for k, v in screenshot.items() if k != "content"}
    return payment


async def load_payment(db: AsyncIOMotorDatabase, payment_id: str, projection: dict = None) -> dict:
    payment = await db.payments.find_one({"payment_id": payment_id}, projection)
    if not payment:
        raise NotFound("Payment not found", payment_id=payment_id)
    return payment


# ==================== SUBMISSION ====================

async def create_payment(
    db: AsyncIOMotorDatabase,
    user_id: str,
    course_id: str,
    amount: float,
    screenshot: bytes,
    content_type: str,
    filename: str = None,
    ip: str = None,
    user_agent: str = None
) -> dict:
    require_fields({
        "user_id": user_id,
        "course_id": course_id,
        "amount": amount,
        "screenshot": screenshot or None,
    })
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    if content_type not in config.ALLOWED_SCREENSHOT_TYPES:
        raise ValidationError(
            "Screenshot must be an image",
            allowed_types=sorted(config.ALLOWED_SCREENSHOT_TYPES),
        )
    if len(screenshot) > config.MAX_SCREENSHOT_BYTES:
        raise ValidationError("Screenshot is too large", max_bytes=config.MAX_SCREENSHOT_BYTES)

    if not await db.users.find_one({"user_id": user_id}, {"user_id": 1}):
        raise NotFound("User not found", user_id=user_id)
    course = await db.courses.find_one({"course_id": course_id}, {"course_id": 1, "price": 1, "currency": 1})
    if not course:
        raise NotFound("Course not found", course_id=course_id)

    existing = await db.payments.find_one(
        {"user_id": user_id, "course_id": course_id, "status": {"$in": ACTIVE_STATUSES}},
        {"payment_id": 1, "status": 1},
    )
    if existing:
        raise Conflict(
            "A payment for this course is already pending or verified",
            payment_id=existing["payment_id"],
            status=existing["status"],
        )

    if course.get("price") is not None and amount != course["price"]:
        logger.warning("Payment amount %s differs from course price %s (%s)", amount, course["price"], course_id)

    now = datetime.utcnow()
    payment = {
        "payment_id": generate_id("PAY"),
        "order_id": generate_id("ORD"),
        "user_id": user_id,
        "course_id": course_id,
        "amount": amount,
        "currency": course.get("currency", config.DEFAULT_CURRENCY),
        "status": PaymentStatus.PENDING.value,
        "screenshot": {
            "content": screenshot,
            "content_type": content_type,
            "filename": filename,
            "size": len(screenshot),
        },
        "gpay_transaction_id": None,
        "failure_reason": None,
        "request_meta": {"ip": ip, "user_agent": user_agent},
        "notification": None,
        "created_at": now,
        "paid_at": None,
        "verified_at": None,
        "rejected_at": None,
        "updated_at": now,
    }
    try:
        await db.payments.insert_one(payment)
    except DuplicateKeyError:
        raise Conflict("Duplicate order id, please retry")

    logger.info("Payment %s submitted by %s for %s", payment["payment_id"], user_id, course_id)
    return public_payment(payment)


# ==================== REVIEW ====================

async def send_invoice(db: AsyncIOMotorDatabase, payment: dict,
                       mailer: Mailer, renderer: InvoiceRenderer) -> dict:
    """
    Phase 2: render the invoice and email it.

    Returns the notification record stored on the payment; any failure is
    captured there instead of being raised.
    """
    notification = {"sent": False, "error": None, "attempted_at": datetime.utcnow()}
    try:
        user = await db.users.find_one({"user_id": payment["user_id"]}, {"name": 1, "email": 1})
        course = await db.courses.find_one({"course_id": payment["course_id"]}, {"title": 1})
        if not user or not course:
            raise NotFound("User or course missing for invoice")

        data = InvoiceData(
            order_id=payment["order_id"],
            user_name=user["name"],
            user_email=user["email"],
            course_title=course["title"],
            amount=payment["amount"],
            currency=payment.get("currency", config.DEFAULT_CURRENCY),
            transaction_id=payment["gpay_transaction_id"],
            verified_at=payment["verified_at"],
            paid_at=payment.get("paid_at"),
        )
        pdf = await asyncio.to_thread(renderer.render, data)
        sent = await mailer.send(
            user["email"],
            f"Payment verified: {course['title']}",
            payment_verified_email(user["name"], course["title"], data.order_id, data.amount, data.currency),
            attachment=Attachment(f"invoice-{data.order_id}.pdf", pdf, "application/pdf"),
        )
        notification["sent"] = bool(sent)
        if not sent:
            notification["error"] = "Email delivery failed"
    except Exception as e:
        logger.exception("Invoice/email failed for payment %s", payment["payment_id"])
        notification["error"] = str(e) or type(e).__name__

    await db.payments.update_one(
        {"payment_id": payment["payment_id"]},
        {"$set": {"notification": notification}},
    )
    return notification


async def verify_payment(
    db: AsyncIOMotorDatabase,
    caller: CallerContext,
    payment_id: str,
    action: str,
    mailer: Mailer,
    renderer: InvoiceRenderer,
    gpay_transaction_id: Optional[str] = None,
    rejection_reason: Optional[str] = None
) -> dict:
    """
    Review a pending payment.

    Returns ``{"payment", "enrolled", "notification", "partial_success"}``;
    ``partial_success`` is True when the payment was verified but the invoice
    email did not go out.
    """
    require_admin(caller)
    payment = await load_payment(db, payment_id, NO_SCREENSHOT)
    if payment["status"] != PaymentStatus.PENDING.value:
        raise InvalidState(
            f"Payment is already {payment['status']}",
            current_status=payment["status"],
        )

    if action == ReviewAction.VERIFY.value:
        gpay_transaction_id = (gpay_transaction_id or "").strip()
        if not gpay_transaction_id:
            raise ValidationError("gpay_transaction_id is required to verify a payment")
        now = datetime.utcnow()
        changes = {
            "status": PaymentStatus.VERIFIED.value,
            "gpay_transaction_id": gpay_transaction_id,
            "verified_at": now,
            "paid_at": now,
            "verified_by": caller.user_id,
            "updated_at": now,
        }
    elif action == ReviewAction.REJECT.value:
        rejection_reason = (rejection_reason or "").strip()
        if not rejection_reason:
            raise ValidationError("rejection_reason is required to reject a payment")
        now = datetime.utcnow()
        changes = {
            "status": PaymentStatus.REJECTED.value,
            "failure_reason": rejection_reason,
            "rejected_at": now,
            "verified_by": caller.user_id,
            "updated_at": now,
        }
    else:
        raise ValidationError("action must be 'verify' or 'reject'", action=action)

    # Phase 1: only one reviewer can move the payment out of pending
    result = await db.payments.update_one(
        {"payment_id": payment_id, "status": PaymentStatus.PENDING.value},
        {"$set": changes},
    )
    if result.modified_count == 0:
        current = await load_payment(db, payment_id, {"status": 1})
        raise InvalidState(
            f"Payment is already {current['status']}",
            current_status=current["status"],
        )
    payment.update(changes)
    await log_audit(db, caller, f"{action}_payment", "payment", payment_id,
                    {"user_id": payment["user_id"], "course_id": payment["course_id"]})

    if action == ReviewAction.REJECT.value:
        logger.info("Payment %s rejected: %s", payment_id, changes["failure_reason"])
        return {
            "payment": public_payment(payment),
            "enrolled": False,
            "notification": None,
            "partial_success": False,
        }

    enrolled = await ensure_enrolled(db, payment["user_id"], payment["course_id"], payment_id)
    logger.info("Payment %s verified (newly enrolled: %s)", payment_id, enrolled)

    # Phase 2
    notification = await send_invoice(db, payment, mailer, renderer)
    payment["notification"] = notification
    return {
        "payment": public_payment(payment),
        "enrolled": enrolled,
        "notification": notification,
        "partial_success": not notification["sent"],
    }


async def reconcile_payment(
    db: AsyncIOMotorDatabase,
    caller: CallerContext,
    payment_id: str,
    mailer: Mailer,
    renderer: InvoiceRenderer,
    resend_invoice: bool = False
) -> dict:
    """Re-run enrollment for a verified payment; safe to repeat"""
    require_admin(caller)
    payment = await load_payment(db, payment_id, NO_SCREENSHOT)
    if payment["status"] != PaymentStatus.VERIFIED.value:
        raise InvalidState("Only verified payments can be reconciled", current_status=payment["status"])

    enrolled = await ensure_enrolled(db, payment["user_id"], payment["course_id"], payment_id)
    notification = payment.get("notification")
    if resend_invoice:
        notification = await send_invoice(db, payment, mailer, renderer)
        payment["notification"] = notification

    await log_audit(db, caller, "reconcile_payment", "payment", payment_id,
                    {"enrolled": enrolled, "resend_invoice": resend_invoice})
    return {
        "payment": public_payment(payment),
        "enrolled": enrolled,
        "notification": notification,
    }


# ==================== QUERIES ====================

async def list_payments(
    db: AsyncIOMotorDatabase,
    caller: CallerContext,
    status: str = None,
    user_id: str = None,
    course_id: str = None,
    skip: int = 0,
    limit: int = 50
) -> List[dict]:
    """Admin review queue, newest first, with student and course names"""
    require_admin(caller)
    query = {}
    if status:
        query["status"] = status
    if user_id:
        query["user_id"] = user_id
    if course_id:
        query["course_id"] = course_id

    cursor = db.payments.find(query, NO_SCREENSHOT).sort("created_at", -1).skip(skip).limit(limit)
    payments = await cursor.to_list(length=limit)

    user_ids = list({p["user_id"] for p in payments})
    course_ids = list({p["course_id"] for p in payments})
    user_cursor = db.users.find({"user_id": {"$in": user_ids}}, {"user_id": 1, "name": 1, "email": 1})
    course_cursor = db.courses.find({"course_id": {"$in": course_ids}}, {"course_id": 1, "title": 1})
    users = {u["user_id"]: u for u in await user_cursor.to_list(length=None)}
    courses = {c["course_id"]: c for c in await course_cursor.to_list(length=None)}

    result = []
    for p in payments:
        item = public_payment(p)
        user = users.get(p["user_id"], {})
        item["user"] = {"name": user.get("name"), "email": user.get("email")}
        item["course_title"] = courses.get(p["course_id"], {}).get("title")
        result.append(item)
    return result


async def get_payment(db: AsyncIOMotorDatabase, caller: CallerContext, payment_id: str) -> dict:
    payment = await load_payment(db, payment_id, NO_SCREENSHOT)
    if not caller.is_admin and payment["user_id"] != caller.user_id:
        raise Forbidden("You can only view your own payments")
    return public_payment(payment)


async def get_payment_screenshot(db: AsyncIOMotorDatabase, caller: CallerContext,
                                 payment_id: str) -> Tuple[bytes, str, Optional[str]]:
    require_admin(caller)
    payment = await load_payment(db, payment_id, {"screenshot": 1})
    screenshot = payment.get("screenshot") or {}
    if not screenshot.get("content"):
        raise NotFound("Screenshot not found", payment_id=payment_id)
    return bytes(screenshot["content"]), screenshot["content_type"], screenshot.get("filename")


async def list_user_payments(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    cursor = db.payments.find({"user_id": user_id}, NO_SCREENSHOT).sort("created_at", -1)
    return [public_payment(p) for p in await cursor.to_list(length=None)]


async def get_payment_audit(db: AsyncIOMotorDatabase, caller: CallerContext, payment_id: str) -> List[dict]:
    require_admin(caller)
    await load_payment(db, payment_id, {"payment_id": 1})
    return await get_audit_trail(db, "payment", payment_id)
