"""
Image validation: type and size checks for untrusted image input.

Responsibility: Turn an ImageInput (remote URL or inline base64) into a
ValidatedImage holding raw bytes and a confirmed media type, or raise a typed
ImageValidationError. Remote images are downloaded here, before any provider
call, so the provider only ever sees bytes that passed the checks.
"""

import base64
import binascii
import ipaddress
import logging
import re
import socket
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlparse

import httpx

from app.core.config import (
    ALLOW_PRIVATE_IMAGE_HOSTS,
    ALLOWED_IMAGE_TYPES,
    DEFAULT_IMAGE_TYPE,
    IMAGE_FETCH_MAX_REDIRECTS,
    IMAGE_FETCH_TIMEOUT,
    IMAGE_SIZE_LIMIT,
)
from app.core.errors import (
    InvalidReference,
    MalformedImageData,
    PayloadTooLarge,
    UnsupportedMediaType,
    UpstreamFetchFailed,
)

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(?P<type>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?;base64,", re.IGNORECASE)


@dataclass(frozen=True)
class ImageInput:
    """Exactly one of url / data is set. ``data`` is base64 text as sent by the client."""

    url: str | None = None
    data: str | None = None
    media_type: str | None = None

    def __post_init__(self) -> None:
        if bool(self.url) == bool(self.data):
            raise ValueError("ImageInput needs exactly one of url or data")

    @property
    def is_remote(self) -> bool:
        return bool(self.url)


@dataclass(frozen=True)
class ValidatedImage:
    content: bytes
    media_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    def to_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")


def _clean_media_type(value: str | None) -> str:
    return (value or "").split(";")[0].strip().lower()


class ImageValidator:
    def __init__(
        self,
        max_bytes: int = IMAGE_SIZE_LIMIT,
        allowed_types: frozenset[str] = ALLOWED_IMAGE_TYPES,
        fetch_timeout: float = IMAGE_FETCH_TIMEOUT,
        http_client: httpx.Client | None = None,
        max_redirects: int = IMAGE_FETCH_MAX_REDIRECTS,
        allow_private_hosts: bool = ALLOW_PRIVATE_IMAGE_HOSTS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_bytes = max_bytes
        self.allowed_types = allowed_types
        self.fetch_timeout = fetch_timeout
        self.max_redirects = max_redirects
        self.allow_private_hosts = allow_private_hosts
        self._http_client = http_client
        self._clock = clock

    def validate(self, image: ImageInput) -> ValidatedImage:
        """
        Check media type, then size. Inline data is decoded and measured; remote
        data is downloaded and measured after (or while) it arrives.

        Raises:
            UnsupportedMediaType, PayloadTooLarge, InvalidReference,
            UpstreamFetchFailed, MalformedImageData.
        """
        data = image.data
        declared = _clean_media_type(image.media_type)
        if data:
            m = _DATA_URI.match(data)
            if m:
                data = data[m.end():]
                declared = declared or _clean_media_type(m.group("type"))
        media_type = declared or DEFAULT_IMAGE_TYPE
        logger.info("[image:validate] IN  remote=%s media_type=%s", image.is_remote, media_type)
        if media_type not in self.allowed_types:
            raise UnsupportedMediaType(media_type)

        if data:
            content = self._decode(data)
            if len(content) > self.max_bytes:
                raise PayloadTooLarge(len(content), self.max_bytes)
            logger.info("[image:validate] OUT inline size=%d media_type=%s", len(content), media_type)
            return ValidatedImage(content=content, media_type=media_type)

        url = image.url or ""
        self._check_url(url)
        content, served_type = self._fetch(url)
        if served_type.startswith("image/"):
            if served_type not in self.allowed_types:
                raise UnsupportedMediaType(served_type)
            media_type = served_type
        logger.info("[image:validate] OUT remote size=%d media_type=%s", len(content), media_type)
        return ValidatedImage(content=content, media_type=media_type)

    def _decode(self, data: str) -> bytes:
        compact = "".join(data.split())
        # Decoded size is 3/4 of the text; no need to decode what is certainly too big.
        estimated = (len(compact) * 3) // 4 - compact[-2:].count("=")
        if estimated > self.max_bytes:
            raise PayloadTooLarge(estimated, self.max_bytes)
        try:
            return base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedImageData(str(e)) from e

    def _check_url(self, url: str) -> None:
        try:
            parsed = urlparse(url)
            host = parsed.hostname or ""
        except ValueError as e:
            raise InvalidReference(url, malformed=True) from e
        if not parsed.scheme:
            raise InvalidReference(url, malformed=True)
        if parsed.scheme.lower() not in ("http", "https"):
            raise InvalidReference(url)
        if not parsed.netloc or not host:
            raise InvalidReference(url, malformed=True)
        if not self.allow_private_hosts and _is_private_host(host):
            raise InvalidReference(url, blocked_host=True)

    def _fetch(self, url: str) -> tuple[bytes, str]:
        """
        Stream the image body, aborting once it passes the cap or the fetch
        timeout. Redirects are followed here so every hop passes _check_url.
        Returns (bytes, served media type).
        """
        logger.info("[image:fetch] IN  url=%s", url)
        deadline = self._clock() + self.fetch_timeout
        client = self._http_client or httpx.Client(timeout=self.fetch_timeout)
        try:
            for _ in range(self.max_redirects + 1):
                with client.stream("GET", url, follow_redirects=False) as response:
                    if response.has_redirect_location:
                        url = str(response.url.join(response.headers["location"]))
                        logger.info("[image:fetch] redirected to %s", url)
                        self._check_url(url)
                        continue
                    if response.status_code != 200:
                        raise UpstreamFetchFailed(url, f"HTTP {response.status_code}")
                    buf = self._read_body(url, response, deadline)
                    served_type = _clean_media_type(response.headers.get("content-type"))
                    break
            else:
                raise UpstreamFetchFailed(url, "too many redirects")
        except httpx.InvalidURL as e:
            raise InvalidReference(url, malformed=True) from e
        except httpx.HTTPError as e:
            raise UpstreamFetchFailed(url, str(e) or type(e).__name__) from e
        finally:
            if self._http_client is None:
                client.close()
        if not buf:
            raise UpstreamFetchFailed(url, "empty body")
        logger.info("[image:fetch] OUT size=%d content_type=%s", len(buf), served_type or "-")
        return bytes(buf), served_type

    def _read_body(self, url: str, response: httpx.Response, deadline: float) -> bytearray:
        buf = bytearray()
        if self._clock() > deadline:
            raise UpstreamFetchFailed(url, "timed out")
        for chunk in response.iter_bytes():
            buf.extend(chunk)
            if len(buf) > self.max_bytes:
                logger.warning("[image:fetch] aborted after %d bytes (limit %d)", len(buf), self.max_bytes)
                raise PayloadTooLarge(len(buf), self.max_bytes)
            if self._clock() > deadline:
                logger.warning("[image:fetch] timed out after %d bytes (limit %.1fs)", len(buf), self.fetch_timeout)
                raise UpstreamFetchFailed(url, "timed out")
        return buf


def _is_private_host(host: str) -> bool:
    """Loopback, private, link-local and other non-global literal addresses. Names are not resolved."""
    host = host.rstrip(".").lower()
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        # Shorthand IPv4 forms such as "127.1" or "2130706433"
        try:
            addr = ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return False
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return not addr.is_global or addr.is_multicast
