from __future__ import annotations


class DomainError(Exception):
    def __init__(
        self,
        error_code: str,
        message: str,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


class AuthenticationError(DomainError):
    def __init__(self, message: str = "인증에 실패했어요.", status_code: int | None = None) -> None:
        super().__init__("AUTH_FAILED", message, retryable=False, status_code=status_code)


class ValidationError(DomainError):
    def __init__(self, message: str = "검증에 실패했어요.") -> None:
        super().__init__("VALIDATION_FAILED", message, retryable=False)


class UpstreamTransientError(DomainError):
    def __init__(
        self,
        message: str = "외부 시스템에 일시적인 문제가 발생했어요.",
        status_code: int | None = None,
    ) -> None:
        super().__init__("UPSTREAM_TRANSIENT", message, retryable=True, status_code=status_code)


class UpstreamRequestError(DomainError):
    def __init__(self, status_code: int, message: str = "외부 시스템이 요청을 거절했어요.") -> None:
        super().__init__("UPSTREAM_REJECTED", message, retryable=False, status_code=status_code)


class NotFoundError(DomainError):
    def __init__(self, message: str = "대상을 찾지 못했어요.") -> None:
        super().__init__("NOT_FOUND", message, retryable=False, status_code=404)


class ConfigurationError(DomainError):
    def __init__(self, message: str = "설정이 올바르지 않아요.") -> None:
        super().__init__("CONFIGURATION_ERROR", message, retryable=False)


class UploadFailedError(DomainError):
    """업로드 실패예요. 사용자에게 그대로 보여주는 유일한 오류예요."""

    def __init__(self, status_code: int | None, detail: str) -> None:
        status_text = str(status_code) if status_code is not None else "network"
        super().__init__(
            "UPLOAD_FAILED",
            f"이미지 업로드에 실패했어요: {status_text} {detail}".rstrip(),
            retryable=False,
            status_code=status_code,
        )
        self.detail = detail


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, DomainError) and exc.status_code == 404
