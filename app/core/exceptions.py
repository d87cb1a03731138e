"""
Пользовательские исключения для централизованной обработки ошибок

Каждое исключение несет `kind` - стабильное имя вида ошибки, которое
отдается клиенту в поле error.kind.
"""

from typing import Optional, Dict, Any


class BaseAppException(Exception):
    """Базовое исключение приложения"""

    kind = "Error"
    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.kind
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": self.details}


# === Ошибки аутентификации ===
class AuthenticationError(BaseAppException):
    """Не передана проверенная идентичность пользователя"""

    kind = "Unauthenticated"

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 401, details=details)


class ForbiddenError(BaseAppException):
    """Роль или владение ресурсом не позволяют выполнить операцию"""

    kind = "Forbidden"

    def __init__(self, action: str, resource: str, reason: str = None):
        message = f"Permission denied: cannot {action} {resource}"
        if reason:
            message += f" - {reason}"
        details = {"action": action, "resource": resource, "reason": reason}
        super().__init__(message, 403, details=details)


# === Ошибки валидации ===
class ValidationError(BaseAppException):
    """Ошибка валидации данных"""

    kind = "ValidationError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, details=details)


# === Ошибки ресурсов ===
class NotFoundError(BaseAppException):
    """Ресурс не найден"""

    kind = "NotFound"

    def __init__(self, resource: str, identifier: str = None):
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found"
            details = {"resource": resource, "identifier": identifier}
        else:
            message = f"{resource} not found"
            details = {"resource": resource}
        super().__init__(message, 404, details=details)


# === Идемпотентные повторы (клиенту следует считать успехом, не повторять) ===
class AlreadyBookedError(BaseAppException):
    kind = "AlreadyBooked"

    def __init__(self, student_id: int, schedule_id: int):
        super().__init__(
            "Student already has an active booking for this slot",
            409,
            details={"student_id": student_id, "schedule_id": schedule_id},
        )


class AlreadyCancelledError(BaseAppException):
    kind = "AlreadyCancelled"

    def __init__(self, booking_id: int):
        super().__init__(
            "Booking is already cancelled", 409, details={"booking_id": booking_id}
        )


class AlreadyCompletedError(BaseAppException):
    kind = "AlreadyCompleted"

    def __init__(self, booking_id: int):
        super().__init__(
            "Lesson is already marked as completed",
            409,
            details={"booking_id": booking_id},
        )


class DuplicateActiveRequestError(BaseAppException):
    kind = "DuplicateActiveRequest"

    def __init__(self, student_id: int, exam_type: str):
        super().__init__(
            f"Student already has an active '{exam_type}' exam request",
            409,
            details={"student_id": student_id, "exam_type": exam_type},
        )


# === Заполненность ===
class CapacityExceededError(BaseAppException):
    """Счетчик слота не может превысить max_capacity"""

    kind = "CapacityExceeded"

    def __init__(self, resource: str, resource_id: int, limit: int = None):
        super().__init__(
            f"{resource} {resource_id} has no remaining capacity",
            409,
            details={"resource": resource, "id": resource_id, "limit": limit},
        )


class SlotFullError(BaseAppException):
    kind = "SlotFull"

    def __init__(self, schedule_id: int):
        super().__init__(
            "This slot is fully booked, try another slot",
            409,
            details={"schedule_id": schedule_id},
        )


class FormFullError(BaseAppException):
    kind = "FormFull"

    def __init__(self, form_id: int):
        super().__init__(
            "This exam form has reached maximum capacity",
            409,
            details={"form_id": form_id},
        )


class FormClosedError(BaseAppException):
    kind = "FormClosed"

    def __init__(self, form_id: int):
        super().__init__(
            "This exam form is no longer accepting requests",
            409,
            details={"form_id": form_id},
        )


# === Временные правила ===
class TooLateError(BaseAppException):
    kind = "TooLate"

    def __init__(self, lead_time_hours: float):
        super().__init__(
            f"Lessons must be booked at least {lead_time_hours:g} hours in advance",
            422,
            details={"lead_time_hours": lead_time_hours},
        )


class NotYetOccurredError(BaseAppException):
    kind = "NotYetOccurred"

    def __init__(self, booking_id: int):
        super().__init__(
            "Lesson cannot be completed before it has started",
            422,
            details={"booking_id": booking_id},
        )


class PhaseRestrictedError(BaseAppException):
    """Студент ещё в теоретической фазе и не может бронировать уроки"""

    kind = "PhaseRestricted"

    def __init__(self, phase: str):
        super().__init__(
            "Complete the theory (code) phase before booking individual lessons",
            422,
            details={"phase": phase},
        )


# === Машина состояний ===
class InvalidTransitionError(BaseAppException):
    kind = "InvalidTransition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"{entity} cannot move from '{current}' to '{target}'",
            409,
            details={"entity": entity, "current": current, "target": target},
        )


# === Инфраструктура ===
class ContentionError(BaseAppException):
    """Конфликт параллельных транзакций, клиенту следует повторить с backoff"""

    kind = "Contention"
    retryable = True

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"Operation '{operation}' conflicted with concurrent writers, retry later",
            503,
            details={"operation": operation, "attempts": attempts},
        )


class UnavailableError(BaseAppException):
    """Хранилище недоступно"""

    kind = "Unavailable"
    retryable = True

    def __init__(
        self,
        message: str = "Storage is temporarily unavailable",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 503, details=details)


# === Ошибки конфигурации ===
class ConfigurationError(BaseAppException):
    """Ошибка конфигурации"""

    kind = "ConfigurationError"

    def __init__(self, parameter: str, message: str = None):
        message = (
            message or f"Configuration parameter '{parameter}' is invalid or missing"
        )
        details = {"parameter": parameter}
        super().__init__(message, 500, details=details)
