"""
Error taxonomy for report generation, export and persistence.

Every error carries a stable ``code`` (for clients that want to branch on it),
a human-readable ``user_message`` and the HTTP status the API maps it to.
The single FastAPI handler in ``tcm_portal.main`` turns these into JSON.
"""
from __future__ import annotations

from typing import Optional


class PortalError(Exception):
    """Base class for all user-visible failures."""

    code: str = "PORTAL_ERROR"
    status_code: int = 500
    default_message: str = "Unexpected server error."

    def __init__(self, user_message: Optional[str] = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


# ---------------------------------------------------------------------------
# Generation side
# ---------------------------------------------------------------------------

class NotJsonError(PortalError):
    """No JSON value could be recovered from the model output."""

    code = "NOT_JSON"
    status_code = 502
    default_message = "AI 返回了非標準 JSON。請重試一次，若仍失敗請稍後再試。"

    def __init__(self, raw_text: str = "", user_message: Optional[str] = None) -> None:
        self.raw_text = raw_text
        super().__init__(user_message)


class OutputTruncatedError(PortalError):
    """Output hit the token limit and what remained was not parseable."""

    code = "OUTPUT_TRUNCATED"
    status_code = 502
    default_message = "AI 輸出被截斷（超出 token 限制）。請縮減輸入內容後重試。"

    def __init__(self, raw_text: str = "", user_message: Optional[str] = None) -> None:
        self.raw_text = raw_text
        super().__init__(user_message)


class GenerationTimeoutError(PortalError):
    code = "GENERATION_TIMEOUT"
    status_code = 504

    def __init__(self, timeout_ms: int, user_message: Optional[str] = None) -> None:
        self.timeout_ms = timeout_ms
        seconds = round(timeout_ms / 1000)
        super().__init__(
            user_message or f"AI 生成超時（{seconds}秒）。請重試，或縮減輸入內容後再生成。"
        )


class GenerationNetworkError(PortalError):
    """DNS / refused / connect-timeout failures reaching the model host."""

    code = "GENERATION_NETWORK"
    status_code = 502

    DNS_FAILURE = "dns_failure"
    CONNECTION_REFUSED = "connection_refused"
    CONNECT_TIMEOUT = "connect_timeout"
    OTHER = "other"

    _MESSAGES = {
        DNS_FAILURE: (
            "Unable to resolve Gemini API host (DNS failure). "
            "Please check your network/DNS settings."
        ),
        CONNECTION_REFUSED: (
            "Connection to Gemini API was refused. "
            "Please check network proxy or firewall settings."
        ),
        CONNECT_TIMEOUT: (
            "Unable to reach Gemini API (network timeout). "
            "Please check outbound network access and try again."
        ),
        OTHER: "Network error while contacting Gemini API.",
    }

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason if reason in self._MESSAGES else self.OTHER
        self.detail = detail
        super().__init__(self._MESSAGES[self.reason])


class GenerationError(PortalError):
    """The model API answered with an error payload or an unusable body."""

    code = "GENERATION_FAILED"
    status_code = 502
    default_message = "AI generation failed."


class GenerationConfigError(PortalError):
    code = "GENERATION_NOT_CONFIGURED"
    status_code = 500
    default_message = "Missing GEMINI_API_KEY environment variable."


# ---------------------------------------------------------------------------
# Export side
# ---------------------------------------------------------------------------

class EmptyContentError(PortalError):
    code = "EMPTY_CONTENT"
    status_code = 422
    default_message = "未檢測到可導出的報告內容。"


class RasterContextError(PortalError):
    code = "RASTER_CONTEXT"
    status_code = 500
    default_message = "PDF 畫布上下文初始化失敗。"


class ExportInProgressError(PortalError):
    code = "EXPORT_IN_PROGRESS"
    status_code = 409
    default_message = "PDF 生成中，請稍候。"


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class StoreNotConfiguredError(PortalError):
    code = "STORE_NOT_CONFIGURED"
    status_code = 503
    default_message = (
        "Persistent storage is not configured. "
        "Please set DATABASE_URL in the environment."
    )


class RecordNotFoundError(PortalError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Record not found."


class StoredReportInvalidError(PortalError):
    """A saved report's content no longer parses as JSON."""

    code = "STORED_REPORT_INVALID"
    status_code = 422
    default_message = "已儲存的報告內容無法解析，請重新生成並儲存報告。"
