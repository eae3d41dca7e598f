"""
Domain error taxonomy.

Services raise these; ``stemelix.main`` turns them into JSON responses with
the matching status code.
"""

from typing import Any, Dict, Optional


class LearningError(Exception):
    status_code = 500
    code = "internal"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.code, "message": self.message}
        body.update(self.extra)
        return body


class ValidationError(LearningError):
    status_code = 400
    code = "validation_error"


class Unauthorized(LearningError):
    status_code = 401
    code = "unauthorized"


class Forbidden(LearningError):
    status_code = 403
    code = "forbidden"


class NotFound(LearningError):
    status_code = 404
    code = "not_found"


class Conflict(LearningError):
    status_code = 409
    code = "conflict"


class InvalidState(LearningError):
    status_code = 409
    code = "invalid_state"


class Internal(LearningError):
    status_code = 500
    code = "internal"


def require_fields(data: Dict[str, Optional[Any]]) -> None:
    """Raise ValidationError listing every empty field"""
    missing = [name for name, value in data.items() if value is None or value == ""]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            missing_fields=missing,
        )
