from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    CONFLICT_DETECTED = "conflict_detected"
    NO_AVAILABILITY = "no_availability"
    VALIDATION_ERROR = "validation_error"
    DATA_ACCESS_ERROR = "data_access_error"
    INVALID_STAY_RANGE = "invalid_stay_range"
    NOT_FOUND = "not_found"


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retryable: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
        }
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return {"error": payload}


class DataAccessError(AppError):
    """The data store failed to answer a read or a write.

    Never to be read as "no conflict" or "available".
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            status_code=503,
            code=ErrorCode.DATA_ACCESS_ERROR.value,
            message=message,
            details=details,
            retryable=True,
        )


class NotFoundError(AppError):
    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND.value,
            message=f"{entity} not found",
            details={"id": entity_id},
        )


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
