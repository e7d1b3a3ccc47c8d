"""
Image validation errors.

Each error carries the message shown to the end user. The pipeline catches
ImageValidationError at the image stage and replies with ``user_message``;
nothing else in the app handles these.
"""


class ImageValidationError(Exception):
    """Base class for rejected image input. Rejections are terminal for the request."""

    kind = "invalid_image"

    def __init__(self, user_message: str, detail: str = "") -> None:
        self.user_message = user_message
        super().__init__(detail or user_message)


class UnsupportedMediaType(ImageValidationError):
    kind = "unsupported_media_type"

    def __init__(self, media_type: str) -> None:
        self.media_type = media_type
        super().__init__(
            f"⚠️ Unsupported image type: {media_type}. Please upload JPEG, PNG, or WebP.",
            f"media type {media_type!r} not allowed",
        )


class PayloadTooLarge(ImageValidationError):
    """Image exceeds the size cap. ``size`` is a lower bound when the download was cut short."""

    kind = "payload_too_large"

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        size_mb = size / (1024 * 1024)
        limit_mb = limit / (1024 * 1024)
        super().__init__(
            f"⚠️ Image too large ({size_mb:.1f} MB). Please upload under {limit_mb:.1f} MB.",
            f"image is {size} bytes, limit {limit}",
        )


class InvalidReference(ImageValidationError):
    kind = "invalid_reference"

    def __init__(self, url: str, malformed: bool = False, blocked_host: bool = False) -> None:
        self.url = url
        if malformed:
            message = "⚠️ Invalid image URL format."
        elif blocked_host:
            message = "⚠️ Invalid image URL. Local and private addresses are not allowed."
        else:
            message = "⚠️ Invalid image URL. Only HTTP/HTTPS URLs are allowed."
        super().__init__(message, f"rejected image url {url!r}")


class UpstreamFetchFailed(ImageValidationError):
    kind = "upstream_fetch_failed"

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(
            "⚠️ Could not download the image. Please check the link and try again.",
            f"fetching {url!r} failed: {reason}",
        )


class MalformedImageData(ImageValidationError):
    kind = "malformed_image_data"

    def __init__(self, reason: str) -> None:
        super().__init__(
            "⚠️ Image data could not be read. Please upload a valid base64-encoded image.",
            f"inline image could not be decoded: {reason}",
        )
