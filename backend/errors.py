# errors.py — Application error taxonomy with PRB-DOMAIN-NUMBER codes
from typing import Any, Dict, Optional

# ============================================================
# ERROR CODE CATALOGUE
# PRB-{DOMAIN}-{NUMBER}
# Domains: VAL, AUTH, DB, SHARE, SYS
# ============================================================

ERROR_CATALOGUE = {
    "PRB-VAL-001": {"message": "Invalid request", "http_status": 400},
    "PRB-VAL-002": {"message": "Request validation failed", "http_status": 422},
    "PRB-AUTH-001": {"message": "Authentication required", "http_status": 401},
    "PRB-AUTH-002": {"message": "Invalid email or password", "http_status": 401},
    "PRB-DB-002": {"message": "Record not found", "http_status": 404},
    "PRB-DB-003": {"message": "Conflict with existing record", "http_status": 409},
    "PRB-SHARE-001": {"message": "Invalid or expired share link", "http_status": 404},
    "PRB-SYS-001": {"message": "Internal server error", "http_status": 500},
}


class AppError(Exception):
    """Base for errors that map onto an HTTP response."""

    status_code = 500
    code = "PRB-SYS-001"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message or ERROR_CATALOGUE.get(self.code, {}).get("message", "Error")
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "PRB-VAL-001"


class AuthenticationError(AppError):
    status_code = 401
    code = "PRB-AUTH-001"


class NotFoundError(AppError):
    """Also used for records owned by someone else, so existence never leaks."""

    status_code = 404
    code = "PRB-DB-002"


class ConflictError(AppError):
    status_code = 409
    code = "PRB-DB-003"


class InternalError(AppError):
    status_code = 500
    code = "PRB-SYS-001"


def error_body(message: str, code: str, request_id: Optional[str] = None) -> Dict[str, Any]:
    return {"error": message, "code": code, "request_id": request_id}
