from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    PROVIDER = "provider"
    VALIDATION = "validation"


class UploadRejectReason(str, Enum):
    INVALID_TYPE = "invalid_type"
    TOO_LARGE = "too_large"
    UNSAFE_CONTENT = "unsafe_content"


class AdforgeError(Exception):
    """Tagged error shared by every layer; callers branch on `kind`, never on vendor types."""

    kind: ErrorKind

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})


class ConfigurationError(AdforgeError):
    kind = ErrorKind.CONFIGURATION


class ProviderError(AdforgeError):
    kind = ErrorKind.PROVIDER

    def __init__(
        self,
        provider: str,
        message: str,
        original_message: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message,
            context={"provider": provider, "status_code": status_code},
        )
        self.provider = provider
        self.original_message = original_message
        self.status_code = status_code


class ValidationRejection(AdforgeError):
    kind = ErrorKind.VALIDATION

    def __init__(self, reason: UploadRejectReason, message: str, file_name: str | None = None) -> None:
        super().__init__(message, context={"reason": reason.value, "file_name": file_name})
        self.reason = reason
