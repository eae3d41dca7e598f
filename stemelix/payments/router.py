from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from stemelix.auth.guard import CallerContext, get_current_caller, get_current_user
from stemelix.database import get_db
from stemelix.dependencies import get_invoice_renderer, get_mailer
from stemelix.notifications.invoice import InvoiceRenderer
from stemelix.notifications.mailer import Mailer
from stemelix.payments import service
from stemelix.payments.models import PaymentReview, PaymentStatus, ReconcileRequest

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", status_code=201)
async def create_payment(
    request: Request,
    course_id: str = Form(...),
    amount: float = Form(...),
    screenshot: UploadFile = File(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    """Submit payment proof; enrollment happens once an admin verifies it"""
    content = await screenshot.read()
    payment = await service.create_payment(
        db,
        user_id=caller.user_id,
        course_id=course_id,
        amount=amount,
        screenshot=content,
        content_type=screenshot.content_type,
        filename=screenshot.filename,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {
        "success": True,
        "message": "Payment submitted successfully. Your enrollment will be completed once verified by us.",
        "payment": payment,
    }


@router.get("")
async def list_payments(
    status: Optional[PaymentStatus] = None,
    user_id: Optional[str] = None,
    course_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    payments = await service.list_payments(
        db, caller,
        status=status.value if status else None,
        user_id=user_id, course_id=course_id, skip=skip, limit=limit,
    )
    return {"success": True, "payments": payments, "count": len(payments)}


@router.get("/me")
async def my_payments(
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_user)
):
    payments = await service.list_user_payments(db, caller.user_id)
    return {"success": True, "payments": payments}


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    return {"success": True, "payment": await service.get_payment(db, caller, payment_id)}


@router.get("/{payment_id}/screenshot")
async def get_payment_screenshot(
    payment_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    content, content_type, filename = await service.get_payment_screenshot(db, caller, payment_id)
    headers = {"Content-Disposition": f'inline; filename="{filename}"'} if filename else None
    return Response(content=content, media_type=content_type, headers=headers)


@router.get("/{payment_id}/audit")
async def get_payment_audit(
    payment_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller)
):
    logs = await service.get_payment_audit(db, caller, payment_id)
    return {"success": True, "payment_id": payment_id, "audit": logs}


@router.post("/{payment_id}/review")
async def review_payment(
    payment_id: str,
    data: PaymentReview,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    mailer: Mailer = Depends(get_mailer),
    renderer: InvoiceRenderer = Depends(get_invoice_renderer)
):
    result = await service.verify_payment(
        db, caller, payment_id, data.action, mailer, renderer,
        gpay_transaction_id=data.gpay_transaction_id,
        rejection_reason=data.rejection_reason,
    )
    if data.action == "reject":
        message = "Payment rejected."
    elif result["partial_success"]:
        message = "Payment verified and user enrolled, but the invoice email could not be sent."
    else:
        message = "Payment verified and user enrolled successfully."
    return {"success": True, "message": message, **result}


@router.post("/{payment_id}/reconcile")
async def reconcile_payment(
    payment_id: str,
    data: ReconcileRequest = ReconcileRequest(),
    db: AsyncIOMotorDatabase = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
    mailer: Mailer = Depends(get_mailer),
    renderer: InvoiceRenderer = Depends(get_invoice_renderer)
):
    result = await service.reconcile_payment(
        db, caller, payment_id, mailer, renderer, resend_invoice=data.resend_invoice
    )
    return {"success": True, **result}
