import hmac
from typing import Optional

from fastapi import Depends, Header

from stemelix import config
from stemelix.auth.tokens import decode_access_token
from stemelix.errors import Unauthorized

ADMIN_ROLE = "admin"
STUDENT_ROLE = "student"


class CallerContext:
    """
    Already-authorized caller handed to services.

    Services never look at headers or secrets; they only ask ``is_admin``.
    """
    def __init__(self, user_id: Optional[str], role: str = STUDENT_ROLE,
                 email: Optional[str] = None, via_admin_key: bool = False):
        self.user_id = user_id
        self.role = role
        self.email = email
        self.via_admin_key = via_admin_key

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def __repr__(self):
        return f"<CallerContext {self.user_id} role={self.role}>"


def admin_key_matches(candidate: Optional[str]) -> bool:
    """Constant-time check of the X-Admin-Key capability"""
    if not candidate or not config.ADMIN_API_KEY:
        return False
    return hmac.compare_digest(candidate.encode(), config.ADMIN_API_KEY.encode())


def _caller_from_headers(authorization: Optional[str], x_admin_key: Optional[str]) -> Optional[CallerContext]:
    caller = None
    if authorization:
        if not authorization.startswith("Bearer "):
            raise Unauthorized("Unauthorized")
        payload = decode_access_token(authorization.split(" ", 1)[1])
        user_id = payload.get("sub")
        if not user_id:
            raise Unauthorized("Invalid token: missing user id")
        caller = CallerContext(user_id, payload.get("role", STUDENT_ROLE), payload.get("email"))

    if admin_key_matches(x_admin_key):
        if caller is None:
            return CallerContext(None, ADMIN_ROLE, via_admin_key=True)
        caller.role = ADMIN_ROLE
        caller.via_admin_key = True
    return caller


async def get_optional_caller(
    authorization: Optional[str] = Header(None),
    x_admin_key: Optional[str] = Header(None),
) -> Optional[CallerContext]:
    """Dependency for public endpoints that behave differently for admins"""
    return _caller_from_headers(authorization, x_admin_key)


async def get_current_caller(
    caller: Optional[CallerContext] = Depends(get_optional_caller),
) -> CallerContext:
    if caller is None:
        raise Unauthorized("Unauthorized")
    return caller


async def get_current_user(
    caller: CallerContext = Depends(get_current_caller),
) -> CallerContext:
    """Dependency for student endpoints: a real user id is required"""
    if not caller.user_id:
        raise Unauthorized("A user token is required for this endpoint")
    return caller


def require_admin(caller: Optional[CallerContext]) -> None:
    if caller is None or not caller.is_admin:
        raise Unauthorized("Unauthorized Access")
