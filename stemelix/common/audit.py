from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from stemelix.auth.guard import CallerContext


class AuditLog(BaseModel):
    actor_user_id: Optional[str] = None
    role: str
    action: str
    target_type: str
    target_id: str
    metadata: dict = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


async def log_audit(
    db: AsyncIOMotorDatabase,
    caller: CallerContext,
    action: str,
    target_type: str,
    target_id: str,
    metadata: dict = None
):
    """
    Log admin actions (content authoring, payment review) for auditability

    Args:
        caller: Authorized caller performing the action
        action: Action performed (e.g., 'verify_payment', 'delete_chapter')
        target_type: Resource type (e.g., 'course', 'payment')
        target_id: Authored id of the resource
        metadata: Additional context (optional)
    """
    entry = AuditLog(
        actor_user_id=caller.user_id,
        role="admin-key" if caller.via_admin_key else caller.role,
        action=action,
        target_type=target_type,
        target_id=target_id,
        metadata=metadata or {},
    )
    await db.audit_logs.insert_one(entry.model_dump())


async def get_audit_trail(db: AsyncIOMotorDatabase, target_type: str = None,
                          target_id: str = None, limit: int = 100):
    """Retrieve audit logs, newest first, with optional filters"""
    query = {}
    if target_type:
        query["target_type"] = target_type
    if target_id:
        query["target_id"] = target_id

    cursor = db.audit_logs.find(query).sort("timestamp", -1).limit(limit)
    logs = await cursor.to_list(length=limit)

    for log in logs:
        log.pop("_id", None)

    return logs
