"""
Image resources: immutable handles to encoded image bytes.

A resource is a URI string, either a ``data:`` URI carrying the encoded
bytes inline (uploads and encoder output) or an ``http(s)://`` URL that is
fetched when the image is decoded.
"""
import re
import base64
import binascii
import hashlib
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote_to_bytes

from .errors import InvalidInput

DATA_URI_RE = re.compile(r"^data:([^;,]*)((?:;[^;,]*)*?)(;base64)?,(.*)$", re.IGNORECASE | re.DOTALL)

# Magic byte prefixes of raster formats Pillow decodes
IMAGE_SIGNATURES = [
    (b'\xff\xd8\xff', "image/jpeg"),
    (b'\x89PNG', "image/png"),
    (b'GIF87a', "image/gif"),
    (b'GIF89a', "image/gif"),
    (b'BM', "image/bmp"),
    (b'II*\x00', "image/tiff"),
    (b'MM\x00*', "image/tiff"),
]

FORMAT_MIME_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
}


def sniff_image_mime(data: bytes) -> Optional[str]:
    """Detect the image MIME type from magic bytes, None if not a known image"""
    head = data[:20]
    if head.startswith(b'RIFF') and head[8:12] == b'WEBP':
        return "image/webp"
    for signature, mime_type in IMAGE_SIGNATURES:
        if head.startswith(signature):
            return mime_type
    return None


@dataclass(frozen=True)
class ImageResource:
    """Opaque, immutable handle to an encoded image"""
    uri: str

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "ImageResource":
        encoded = base64.b64encode(data).decode("ascii")
        return cls(f"data:{mime_type};base64,{encoded}")

    @property
    def is_data_uri(self) -> bool:
        return self.uri[:5].lower() == "data:"

    @property
    def is_remote(self) -> bool:
        return self.uri[:7].lower() == "http://" or self.uri[:8].lower() == "https://"

    @property
    def mime_type(self) -> Optional[str]:
        """MIME type declared by a data URI (None for remote URLs)"""
        if not self.is_data_uri:
            return None
        match = DATA_URI_RE.match(self.uri)
        if not match:
            return None
        return (match.group(1) or "text/plain").lower()

    @property
    def fingerprint(self) -> str:
        return hashlib.sha256(self.uri.encode("utf-8")).hexdigest()

    def payload(self) -> bytes:
        """Decode the bytes carried by a data URI"""
        match = DATA_URI_RE.match(self.uri) if self.is_data_uri else None
        if not match:
            raise InvalidInput("Resource is not a data URI")
        body = match.group(4)
        if match.group(3):
            try:
                return base64.b64decode("".join(body.split()), validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidInput(f"Malformed base64 payload: {e}")
        return unquote_to_bytes(body)

    @property
    def byte_size(self) -> Optional[int]:
        """Size of the encoded image, None for remote URLs"""
        if not self.is_data_uri:
            return None
        return len(self.payload())

    def __repr__(self) -> str:
        preview = self.uri if len(self.uri) <= 64 else f"{self.uri[:61]}..."
        return f"ImageResource({preview!r})"
