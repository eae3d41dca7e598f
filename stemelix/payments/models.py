from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


# Statuses that block a new submission for the same (user, course)
ACTIVE_STATUSES = [PaymentStatus.PENDING.value, PaymentStatus.VERIFIED.value]


class ReviewAction(str, Enum):
    VERIFY = "verify"
    REJECT = "reject"


class PaymentReview(BaseModel):
    action: str
    gpay_transaction_id: Optional[str] = None
    rejection_reason: Optional[str] = None


class ReconcileRequest(BaseModel):
    resend_invoice: bool = False
