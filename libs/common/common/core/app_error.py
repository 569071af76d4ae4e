from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from common.utils.json_model import JsonModel


class ErrorDetails(JsonModel):
    scope: str
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorConfig(JsonModel):
    scope: str
    code: str
    default_message: str
    http_status: int | None = None

    def create(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        http_status: int | None = None,
        cause: BaseException | None = None,
    ) -> AppException:
        msg = message if message is not None else self.default_message
        http = http_status if http_status is not None else self.http_status

        # If the cause is also an AppException, keep its identity and merge details
        if isinstance(cause, AppException):
            scope = cause.details.scope
            code = cause.details.code
            http = cause.http_status
            if details and cause.details.details:
                details = {**cause.details.details, **details}
            elif cause.details.details:
                details = cause.details.details
            if cause.details.message:
                msg = f"{msg}: {cause.details.message}" if msg else cause.details.message
        else:
            scope = self.scope
            code = self.code

        app_error = AppError(
            details=ErrorDetails(scope=scope, code=code, message=msg, details=details),
            http_status=http,
            cause=cause,
        )
        return AppException(app_error)

    def is_(self, error: BaseException) -> bool:
        return AppException.is_(error, self)


class Errors:
    class Generic:
        INVALID_INPUT = ErrorConfig(scope="generic", code="invalid_input", default_message="Invalid input", http_status=400)
        INTERNAL_ERROR = ErrorConfig(scope="generic", code="internal_error", default_message="Internal error", http_status=500)

    class Config:
        INVALID = ErrorConfig(scope="config", code="invalid", default_message="Invalid configuration")
        MISSING_DATABASE_URL = ErrorConfig(scope="config", code="missing_database_url", default_message="POSTGRES_URL is not set")

    class Migration:
        DISCOVERY_FAILED = ErrorConfig(scope="migration", code="discovery_failed", default_message="Failed to discover SQL migrations")
        DUPLICATE = ErrorConfig(scope="migration", code="duplicate", default_message="Migration already registered")
        NOT_FOUND = ErrorConfig(scope="migration", code="not_found", default_message="Migration not found")
        INVALID_NAME = ErrorConfig(scope="migration", code="invalid_name", default_message="Invalid migration name")
        REVISION_MISMATCH = ErrorConfig(
            scope="migration", code="revision_mismatch", default_message="Alembic revisions do not match the SQL migrations"
        )
        FAILED = ErrorConfig(scope="migration", code="failed", default_message="Migration failed")

    class Server:
        START_FAILED = ErrorConfig(scope="server", code="start_failed", default_message="Server failed to start")


class AppError(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    details: ErrorDetails = Field(..., description="Error details")
    http_status: int | None = Field(default=None, description="HTTP status code")
    cause: BaseException | None = Field(default=None, description="Underlying cause")


class AppException(Exception):
    """Exception wrapper for AppError that can be raised."""

    def __init__(self, app_error: AppError) -> None:
        self.app_error = app_error
        super().__init__(app_error.details.message)

    @property
    def details(self) -> ErrorDetails:
        return self.app_error.details

    @property
    def http_status(self) -> int | None:
        return self.app_error.http_status

    @property
    def cause(self) -> BaseException | None:
        return self.app_error.cause

    @staticmethod
    def is_(error: BaseException, error_config: ErrorConfig) -> bool:
        return (
            isinstance(error, AppException)
            and error.details.scope == error_config.scope
            and error.details.code == error_config.code
        )
