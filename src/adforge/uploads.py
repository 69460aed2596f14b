from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from adforge.errors import UploadRejectReason, ValidationRejection

logger = logging.getLogger(__name__)

VALID_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
MAX_IMAGE_SIZE = 5 * 1024 * 1024

# None is a wildcard byte.
FILE_SIGNATURES: dict[str, list[list[int | None]]] = {
    "image/jpeg": [
        [0xFF, 0xD8, 0xFF, 0xE0],
        [0xFF, 0xD8, 0xFF, 0xE1],
        [0xFF, 0xD8, 0xFF, 0xE2],
        [0xFF, 0xD8, 0xFF, 0xE3],
        [0xFF, 0xD8, 0xFF, 0xDB],
        [0xFF, 0xD8, 0xFF, 0xEE],
    ],
    "image/png": [[0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A]],
    "image/gif": [
        [0x47, 0x49, 0x46, 0x38, 0x37, 0x61],
        [0x47, 0x49, 0x46, 0x38, 0x39, 0x61],
    ],
    "image/webp": [[0x52, 0x49, 0x46, 0x46, None, None, None, None, 0x57, 0x45, 0x42, 0x50]],
}

SVG_DANGEROUS_PATTERNS = [
    re.compile(r"<script\b", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"<iframe\b", re.IGNORECASE),
    re.compile(r"<embed\b", re.IGNORECASE),
    re.compile(r"<object\b", re.IGNORECASE),
    re.compile(r"data\s*:\s*text/html", re.IGNORECASE),
    re.compile(r"xlink:href\s*=\s*[\"']?data:text", re.IGNORECASE),
]

# Markup that has no business inside a raster image (polyglot payloads).
EMBEDDED_MARKUP_PATTERNS = [
    re.compile(rb"<script", re.IGNORECASE),
    re.compile(rb"</script", re.IGNORECASE),
    re.compile(rb"<html", re.IGNORECASE),
    re.compile(rb"<body", re.IGNORECASE),
    re.compile(rb"<\?php", re.IGNORECASE),
]

SVG_SNIFF = re.compile(rb"^\s*(<\?xml[^>]*>\s*)?(<!--.*?-->\s*)*(<!doctype\s+svg[^>]*>\s*)?<svg\b", re.IGNORECASE | re.DOTALL)

RESERVED_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')
IMAGE_EXTENSION = re.compile(r"\.(jpe?g|png|gif|webp)$", re.IGNORECASE)

MSG_INVALID_TYPE = "Invalid file type"
MSG_TOO_LARGE = "File size exceeds maximum allowed"
MSG_UNSAFE = "File contains potentially malicious content"


@dataclass(frozen=True)
class UploadCandidate:
    raw_bytes: bytes
    declared_mime_type: str
    file_name: str
    size_bytes: int

    @classmethod
    def from_bytes(cls, raw_bytes: bytes, declared_mime_type: str | None, file_name: str | None) -> UploadCandidate:
        return cls(
            raw_bytes=raw_bytes,
            declared_mime_type=(declared_mime_type or "").strip().lower(),
            file_name=file_name or "",
            size_bytes=len(raw_bytes),
        )


@dataclass(frozen=True)
class AcceptedUpload:
    file_name: str
    mime_type: str
    size_bytes: int
    raw_bytes: bytes
    signature_verified: bool
    width: int | None = None
    height: int | None = None

    def describe(self) -> dict[str, object]:
        return {
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "signature_verified": self.signature_verified,
            "width": self.width,
            "height": self.height,
        }


def format_file_size(num_bytes: int, decimals: int = 2) -> str:
    if num_bytes == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    text = f"{value:.{max(decimals, 0)}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {units[i]}"


def sanitize_filename(file_name: str | None) -> str:
    if not isinstance(file_name, str):
        return "image.png"
    cleaned = re.sub(r"[/\\]", "", file_name)
    cleaned = RESERVED_CHARS.sub("", cleaned)
    # Removing ".." can join two dots into a new pair ("...."), so repeat.
    while ".." in cleaned:
        cleaned = cleaned.replace("..", "")
    cleaned = cleaned.strip()
    if not cleaned or cleaned == ".":
        cleaned = "image"
    if not IMAGE_EXTENSION.search(cleaned):
        cleaned += ".png"
    return cleaned


def detect_malicious_svg(svg_content: str | bytes) -> bool:
    if isinstance(svg_content, bytes):
        svg_content = svg_content.decode("utf-8", errors="replace")
    if not isinstance(svg_content, str):
        return True
    return any(p.search(svg_content) for p in SVG_DANGEROUS_PATTERNS)


def detect_embedded_markup(raw_bytes: bytes) -> bool:
    return any(p.search(raw_bytes) for p in EMBEDDED_MARKUP_PATTERNS)


def looks_like_svg(candidate: UploadCandidate) -> bool:
    if candidate.declared_mime_type == "image/svg+xml":
        return True
    if candidate.file_name.lower().endswith(".svg"):
        return True
    return bool(SVG_SNIFF.match(candidate.raw_bytes[:4096]))


def verify_signature(raw_bytes: bytes, mime_type: str) -> bool:
    signatures = FILE_SIGNATURES.get(mime_type)
    if not signatures:
        return False
    header = raw_bytes[:12]
    for signature in signatures:
        if len(header) < len(signature):
            continue
        if all(b is None or b == header[i] for i, b in enumerate(signature)):
            return True
    return False


def _image_dimensions(raw_bytes: bytes) -> tuple[int | None, int | None]:
    try:
        with Image.open(io.BytesIO(raw_bytes)) as img:
            return img.size
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None, None


def validate_upload(
    candidate: UploadCandidate,
    max_bytes: int = MAX_IMAGE_SIZE,
    strict_signatures: bool = False,
) -> AcceptedUpload:
    """Gate one file before it enters the generation pipeline.

    Raises ValidationRejection with one of the fixed reasons; returns the
    accepted descriptor (sanitized name, verified type) otherwise. Unsafe
    content is checked first so an SVG carrying script is reported as such
    rather than as a plain type mismatch.
    """
    name = candidate.file_name

    if looks_like_svg(candidate) and detect_malicious_svg(candidate.raw_bytes):
        logger.warning("Rejected upload %r: executable SVG markup", name)
        raise ValidationRejection(UploadRejectReason.UNSAFE_CONTENT, MSG_UNSAFE, name)
    if detect_embedded_markup(candidate.raw_bytes):
        logger.warning("Rejected upload %r: embedded markup", name)
        raise ValidationRejection(UploadRejectReason.UNSAFE_CONTENT, MSG_UNSAFE, name)

    mime = candidate.declared_mime_type
    if mime not in VALID_IMAGE_TYPES:
        raise ValidationRejection(
            UploadRejectReason.INVALID_TYPE,
            f"{MSG_INVALID_TYPE}: {mime or 'unknown'}. Allowed types: {', '.join(VALID_IMAGE_TYPES)}",
            name,
        )

    if candidate.size_bytes > max_bytes:
        raise ValidationRejection(
            UploadRejectReason.TOO_LARGE,
            f"{MSG_TOO_LARGE} ({format_file_size(max_bytes)})",
            name,
        )

    if candidate.size_bytes <= 0:
        raise ValidationRejection(UploadRejectReason.INVALID_TYPE, f"{MSG_INVALID_TYPE}: file is empty", name)

    verified = verify_signature(candidate.raw_bytes, mime)
    if strict_signatures and not verified:
        raise ValidationRejection(
            UploadRejectReason.INVALID_TYPE,
            f"{MSG_INVALID_TYPE}: file signature does not match {mime}",
            name,
        )

    width, height = _image_dimensions(candidate.raw_bytes) if verified else (None, None)
    accepted = AcceptedUpload(
        file_name=sanitize_filename(name),
        mime_type=mime,
        size_bytes=candidate.size_bytes,
        raw_bytes=candidate.raw_bytes,
        signature_verified=verified,
        width=width,
        height=height,
    )
    logger.info("Accepted upload %r as %s (%s)", name, accepted.file_name, format_file_size(accepted.size_bytes))
    return accepted


class UploadSlot:
    """Client-side holder for the single product image of the ad form."""

    def __init__(self, max_bytes: int = MAX_IMAGE_SIZE, strict_signatures: bool = False) -> None:
        self.max_bytes = max_bytes
        self.strict_signatures = strict_signatures
        self.accepted: AcceptedUpload | None = None
        self.error: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.accepted is None

    def select(self, candidate: UploadCandidate) -> AcceptedUpload | None:
        try:
            self.accepted = validate_upload(candidate, self.max_bytes, self.strict_signatures)
        except ValidationRejection as exc:
            self.accepted = None
            self.error = exc.message
            return None
        self.error = None
        return self.accepted

    def clear(self) -> None:
        self.accepted = None
        self.error = None
