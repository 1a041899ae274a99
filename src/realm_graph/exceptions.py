"""Custom exceptions for the Realm Graph engine.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_TITLE_REQUIRED = 1004
    NOTE_TITLE_TOO_LONG = 1006
    NOTE_ACCESS_DENIED = 1007

    # Relationship errors (2xxx)
    RELATIONSHIP_ALREADY_EXISTS = 2002
    RELATIONSHIP_NOT_FOUND = 2003
    RELATIONSHIP_SELF_REFERENCE = 2004
    RELATIONSHIP_CYCLE = 2005

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_WRITE_CONFLICT = 4008
    STORAGE_RETRIES_EXHAUSTED = 4009

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_RELATIONSHIP_TYPE = 7003
    INVALID_DEPTH = 7006
    INVALID_LIMIT = 7007


class RealmGraphError(Exception):
    """Base exception for all Realm Graph errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(RealmGraphError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class RelationshipNotFoundError(RealmGraphError):
    """Raised when a relationship id does not resolve on its source note."""

    def __init__(self, relationship_id: str, source_id: str):
        super().__init__(
            f"Relationship '{relationship_id}' not found on note '{source_id}'",
            code=ErrorCode.RELATIONSHIP_NOT_FOUND,
            details={"relationship_id": relationship_id, "source_id": source_id}
        )
        self.relationship_id = relationship_id
        self.source_id = source_id


class AccessDeniedError(RealmGraphError):
    """Raised when a note exists but belongs to a different owner."""

    def __init__(self, note_id: str, owner_id: str):
        # Requesting owner stays out of the message and details
        super().__init__(
            f"Access denied to note '{note_id}'",
            code=ErrorCode.NOTE_ACCESS_DENIED,
            details={"note_id": note_id}
        )
        self.note_id = note_id
        self.owner_id = owner_id


class ValidationError(RealmGraphError):
    """Raised for input and invariant validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(RealmGraphError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        note_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if note_id:
            details["note_id"] = note_id
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.note_id = note_id
        self.original_error = original_error


class WriteConflictError(StorageError):
    """Raised when a note was modified since it was read.

    This indicates optimistic concurrency control failure - another
    caller saved the note after our snapshot was taken.

    Attributes:
        expected_version: The version the caller read
        actual_version: The version currently stored
    """

    def __init__(self, note_id: str, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Version conflict for note '{note_id}': "
            f"expected {expected_version}, got {actual_version}",
            operation="save",
            note_id=note_id,
            code=ErrorCode.STORAGE_WRITE_CONFLICT,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.details["expected_version"] = expected_version
        self.details["actual_version"] = actual_version


class TransientStoreError(StorageError):
    """Raised when a mutation keeps conflicting after all retries.

    Distinct from ValidationError: the same call may succeed later.
    """

    def __init__(
        self,
        message: str,
        note_id: Optional[str] = None,
        attempts: int = 0,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation="retry",
            note_id=note_id,
            code=ErrorCode.STORAGE_RETRIES_EXHAUSTED,
            original_error=original_error,
        )
        self.attempts = attempts
        self.details["attempts"] = attempts

