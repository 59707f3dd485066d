"""
Custom exceptions for the re-application engine.
"""

from typing import Any, Dict


class ReApplicationError(Exception):
    """Base exception for all re-application errors"""
    code = "reapplication_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, "retryable": self.retryable}


class ApplicationNotFound(ReApplicationError):
    """Raised when the application does not exist or belongs to another user"""
    code = "not_found"


class NotEligible(ReApplicationError):
    """Raised when the application is neither rejected, incomplete nor holding an expired document"""
    code = "not_eligible"


class CatalogUnavailable(ReApplicationError):
    """Raised when the requirement catalog cannot be read; nothing is treated as satisfied"""
    code = "catalog_unavailable"


class StalePlan(ReApplicationError):
    """Raised when the source application changed after the plan was generated"""
    code = "stale_plan"
    retryable = True


class CommitConflict(ReApplicationError):
    """Raised when another commit on the same source application won the race"""
    code = "commit_conflict"
    retryable = True


class PersistenceFailure(ReApplicationError):
    """Raised when the write transaction failed; no records were kept"""
    code = "persistence_failure"


class UnknownRequirement(ReApplicationError):
    """Raised when a document targets a requirement outside the application's active catalog"""
    code = "unknown_requirement"


class NotificationNotFound(ReApplicationError):
    """Raised when the notification does not exist or belongs to another user"""
    code = "not_found"
