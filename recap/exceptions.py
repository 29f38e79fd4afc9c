"""Recap pipeline errors.

Every failure surfaced to a caller is exactly one of these classes. Each
carries a stable machine-readable ``code`` and a user-facing (Vietnamese)
message, so clients and tests can rely on the exact text.
"""

from typing import Optional


class RecapError(Exception):
    """Base exception for all recap errors."""

    code: str = "RECAP_ERROR"
    status_code: int = 500
    message: str = "Không thể tạo video. Vui lòng thử lại."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        suggested_fix: Optional[str] = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialize for API / CLI output (no internal trace)."""
        data = {"code": self.code, "message": self.message}
        if self.suggested_fix:
            data["suggested_fix"] = self.suggested_fix
        return data


# =============================================================================
# Input / environment errors
# =============================================================================


class ValidationError(RecapError):
    """Photo count outside 1..50."""

    code = "VALIDATION_ERROR"
    status_code = 400

    @classmethod
    def no_images(cls) -> "ValidationError":
        return cls("Chưa có ảnh nào để tạo video.", code="NO_IMAGES")

    @classmethod
    def too_many_images(cls, max_count: int = 50) -> "ValidationError":
        return cls(
            f"Tối đa {max_count} ảnh. Vui lòng chọn ít ảnh hơn.",
            code="TOO_MANY_IMAGES",
        )

    @classmethod
    def invalid_options(cls) -> "ValidationError":
        return cls("Cấu hình video không hợp lệ.", code="INVALID_OPTIONS")


class UnsupportedRuntimeError(RecapError):
    """Encoding primitives (FFmpeg) are absent."""

    code = "UNSUPPORTED_RUNTIME"
    status_code = 501
    message = "Hệ thống không hỗ trợ tạo video. Vui lòng cài đặt FFmpeg."


class ResourceAllocationError(RecapError):
    """Output surface could not be allocated."""

    code = "RESOURCE_ALLOCATION"
    status_code = 507
    message = (
        "Không đủ bộ nhớ để tạo video. "
        "Vui lòng thử với ít ảnh hơn hoặc giải phóng tài nguyên."
    )

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message, suggested_fix="Reduce the image count or free resources"
        )


class EncoderInitError(RecapError):
    """No usable codec/container combination, or the encoder failed to open."""

    code = "ENCODER_INIT"
    message = "Không thể khởi tạo bộ ghi video. Vui lòng thử lại."


# =============================================================================
# Runtime errors
# =============================================================================


class ImageLoadError(RecapError):
    """A specific image failed to load. ``index`` is 1-based."""

    code = "IMAGE_LOAD"
    status_code = 422

    def __init__(self, index: int):
        self.index = index
        super().__init__(
            f"Không thể tải ảnh thứ {index}. "
            "Vui lòng kiểm tra kết nối mạng và thử lại."
        )


class EmptyOutputError(RecapError):
    """The encoder produced no data."""

    code = "EMPTY_OUTPUT"
    message = "Không có dữ liệu video. Vui lòng thử lại."


class CorruptOutputError(RecapError):
    """The concatenated output is zero bytes."""

    code = "CORRUPT_OUTPUT"
    message = "Video bị lỗi. Vui lòng thử với ít ảnh hơn."


class MemoryPressureError(RecapError):
    """Encoder failure caused by memory or quota exhaustion."""

    code = "MEMORY_PRESSURE"
    status_code = 507
    message = "Không đủ bộ nhớ. Vui lòng thử với ít ảnh hơn."


class RecapTimeoutError(RecapError):
    """The global wall-clock ceiling was exceeded."""

    code = "TIMEOUT"
    status_code = 504
    message = (
        "Quá trình tạo video mất quá nhiều thời gian. "
        "Vui lòng thử với ít ảnh hơn."
    )


class EncodingError(RecapError):
    """Any other encoder runtime failure."""

    code = "ENCODING_FAILED"
    message = "Không thể ghi video. Vui lòng thử lại."


class RecapCancelledError(RecapError):
    """The caller aborted the pipeline."""

    code = "CANCELLED"
    status_code = 499
    message = "Đã hủy tạo video."


# Substrings that mark an encoder failure as memory exhaustion
MEMORY_MARKERS = ("memory", "quota")


def classify_encoder_error(exc: BaseException) -> RecapError:
    """Remap a raw encoder failure into the recap taxonomy."""
    if isinstance(exc, RecapError):
        return exc
    if isinstance(exc, MemoryError):
        return MemoryPressureError()
    text = str(exc).lower()
    if any(marker in text for marker in MEMORY_MARKERS):
        return MemoryPressureError()
    return EncodingError()
