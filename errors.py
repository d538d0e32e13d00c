"""
Error hierarchy shared by the rule modules and the service layer.
Every error carries a human-readable message and a stable code.
"""


class ServiceError(Exception):
    """Base service error."""

    def __init__(self, message: str, code: str = "SERVICE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ConflictError(ServiceError):
    """Concurrent modification or conflicting state."""

    def __init__(self, message: str = "Conflict: resource was modified"):
        super().__init__(message, "CONFLICT")


class ValidationError(ServiceError):
    """Validation error."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code)


class NotFoundError(ServiceError):
    """Resource not found."""

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")


class ForbiddenError(ServiceError):
    """Permission denied."""

    def __init__(self, message: str):
        super().__init__(message, "FORBIDDEN")


# Rule errors (all rejected operations, never fatal)

class InvalidDate(ValidationError):
    def __init__(self, value: object):
        super().__init__(f"Invalid date: {value!r}. Expected YYYY-MM-DD", "INVALID_DATE")


class InvalidDateRange(ValidationError):
    def __init__(self, message: str = "end_date must be greater than or equal to start_date"):
        super().__init__(message, "INVALID_DATE_RANGE")


class InvalidStatus(ValidationError):
    def __init__(self, value: object, allowed: list[str]):
        super().__init__(
            f"Invalid status {value!r}: status must be one of: {', '.join(allowed)}",
            "INVALID_STATUS",
        )


class InvalidTransition(ValidationError):
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change status from {current} back to {requested}: "
            "a case marked as return_to_work can only be closed",
            "INVALID_TRANSITION",
        )


class ActiveRehabBlocksClosure(ValidationError):
    def __init__(self):
        super().__init__(
            "Cannot update case status while active rehabilitation plans exist. "
            "Complete or cancel them first.",
            "ACTIVE_REHAB_BLOCKS_CLOSURE",
        )


class MissingReturnToWorkFields(ValidationError):
    def __init__(self, field: str):
        super().__init__(f"Return to work requires {field}", "MISSING_RETURN_TO_WORK_FIELDS")


class InvalidDutyType(ValidationError):
    def __init__(self, value: object):
        super().__init__(
            f'Invalid duty type {value!r}: must be either "modified" or "full"',
            "INVALID_DUTY_TYPE",
        )


class ReturnDateInPast(ValidationError):
    def __init__(self, value: object):
        super().__init__(f"Return date {value} cannot be in the past", "RETURN_DATE_IN_PAST")


class ReturnToWorkFieldsNotAllowed(ValidationError):
    def __init__(self, status: str):
        super().__init__(
            f"Return to work fields can only be set when status is return_to_work (got {status})",
            "RETURN_TO_WORK_FIELDS_NOT_ALLOWED",
        )
