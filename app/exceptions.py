import enum
from http import HTTPStatus
from typing import Any


class ErrorType(enum.Enum):
    ACCOUNT_NOT_FOUND = "account_not_found"
    CONFIGURATION = "configuration_error"
    CURSOR_EXPIRED = "cursor_expired"
    DELIVERY_FAILED = "delivery_failed"
    ENTITY_NOT_FOUND = "entity_not_found"
    INELIGIBLE_ACCOUNT = "ineligible_account"
    INTERNAL_ERROR = "internal_error"
    INVALID_STATE = "invalid_state"
    MALFORMED_NOTIFICATION = "malformed_notification"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    THIRD_PARTY_REQUEST = "third_party_request"
    UNAUTHORIZED_REQUEST = "unauthorized_request"
    UNHANDLED_EXCEPTION = "unhandled_exception"
    UPSTREAM_AUTH = "upstream_auth_error"
    UNSPECIFIED = "unspecified"


class BaseError(Exception):
    extra: dict[str, Any]

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UNSPECIFIED,
        status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.extra = {key: value for key, value in kwargs.items() if value is not None}

    def __str__(self) -> str:
        return f"error: {self.error_type.value}; description: {self.message}"


class ProtocolError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.METHOD_NOT_ALLOWED,
        status_code: HTTPStatus = HTTPStatus.METHOD_NOT_ALLOWED,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class MalformedNotificationError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.MALFORMED_NOTIFICATION,
        status_code: HTTPStatus = HTTPStatus.BAD_REQUEST,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class UnauthorizedNotificationError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UNAUTHORIZED_REQUEST,
        status_code: HTTPStatus = HTTPStatus.UNAUTHORIZED,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class EntityNotFoundError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.ENTITY_NOT_FOUND,
        status_code: HTTPStatus = HTTPStatus.NOT_FOUND,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class AccountNotFoundError(EntityNotFoundError):
    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, ErrorType.ACCOUNT_NOT_FOUND, HTTPStatus.NOT_FOUND, **kwargs)


class IneligibleAccountError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INELIGIBLE_ACCOUNT,
        status_code: HTTPStatus = HTTPStatus.CONFLICT,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class InvalidStateError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INVALID_STATE,
        status_code: HTTPStatus = HTTPStatus.BAD_REQUEST,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class ConfigError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.CONFIGURATION,
        status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class UpstreamAuthError(BaseError):
    """The provider rejected an authorization code or refresh token."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UPSTREAM_AUTH,
        status_code: HTTPStatus = HTTPStatus.UNAUTHORIZED,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class UpstreamAPIError(BaseError):
    """A provider API call failed after the allowed retries."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.THIRD_PARTY_REQUEST,
        status_code: HTTPStatus = HTTPStatus.BAD_GATEWAY,
        upstream_status: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, upstream_status=upstream_status, **kwargs)
        self.upstream_status = upstream_status


class CursorExpiredError(BaseError):
    """The stored history cursor is older than the provider's retained window."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.CURSOR_EXPIRED,
        status_code: HTTPStatus = HTTPStatus.GONE,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class DeliveryError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.DELIVERY_FAILED,
        status_code: HTTPStatus = HTTPStatus.BAD_GATEWAY,
        response_status: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, response_status=response_status, **kwargs)
        self.response_status = response_status
