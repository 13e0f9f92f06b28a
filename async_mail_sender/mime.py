"""MIME rendering for outgoing messages.

The payload produced here is what the transport streams after ``DATA``:
an RFC 2822 header block, an RFC 2047 encoded subject and a base64 body,
either single-part or ``multipart/mixed`` when attachments are present.
Lines are terminated by CRLF throughout.
"""

from __future__ import annotations

import base64
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from .errors import MissingSenderError

if TYPE_CHECKING:
    from .models import BodyFormat, Message

CRLF = "\r\n"
BOUNDARY_ALPHABET = "0123456789ABCDEF"
BOUNDARY_LENGTH = 24
SUBJECT_CHUNK_SIZE = 13
BASE64_LINE_LENGTH = 76


class BoundaryGenerator:
    """Produce multipart boundary tokens.

    Without an explicit ``rng`` every call draws from a fresh generator
    seeded with the current time. Pass a seeded :class:`random.Random` to
    get a reproducible sequence of tokens.
    """

    def __init__(self, rng: Optional[random.Random] = None, length: int = BOUNDARY_LENGTH):
        self._rng = rng
        self.length = length

    def __call__(self) -> str:
        rng = self._rng if self._rng is not None else random.Random(time.time_ns())
        return "".join(rng.choice(BOUNDARY_ALPHABET) for _ in range(self.length))


def check_header_value(value: str, what: str) -> str:
    """Return ``value`` unchanged, or raise ``ValueError`` if it contains CR or LF."""
    if "\r" in value or "\n" in value:
        raise ValueError(f"{what} must not contain line breaks: {value!r}")
    return value


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _utf8(text: str) -> bytes:
    # Lone surrogates cannot be encoded; they become "?".
    return text.encode("utf-8", errors="replace")


def wrap_base64(data: bytes, width: int = BASE64_LINE_LENGTH) -> str:
    """Base64-encode ``data`` and hard-wrap the result at ``width`` characters."""
    encoded = base64.b64encode(data).decode("ascii")
    return CRLF.join(encoded[i:i + width] for i in range(0, len(encoded), width))


@dataclass(frozen=True)
class AttachmentPart:
    """A rendered attachment: the file name and its wrapped base64 content."""

    filename: str
    content: str

    @classmethod
    def from_bytes(cls, data: bytes, filename: str) -> "AttachmentPart":
        check_header_value(filename, "Attachment filename")
        return cls(filename=filename, content=wrap_base64(data))

    def lines(self) -> List[str]:
        name = _quote(self.filename)
        return [
            f'Content-Type: application/octet-stream; name="{name}"',
            "Content-Transfer-Encoding: base64",
            f'Content-Disposition: attachment; filename="{name}"',
            "",
            self.content,
        ]


def split_utf8(text: str, size: int = SUBJECT_CHUNK_SIZE) -> List[str]:
    """Split ``text`` into chunks of at most ``size`` code points."""
    return [text[i:i + size] for i in range(0, len(text), size)]


def encode_word(text: str) -> str:
    """Return ``text`` as a single RFC 2047 base64 encoded word."""
    return "=?utf-8?B?" + base64.b64encode(_utf8(text)).decode("ascii") + "?="


def subject_lines(subject: str) -> List[str]:
    """Render the Subject header, one encoded word per physical line."""
    if not subject:
        return ["Subject: "]
    words = [encode_word(chunk) for chunk in split_utf8(subject)]
    return ["Subject: " + words[0]] + [" " + word for word in words[1:]]


def encode_body(body: str) -> str:
    return wrap_base64(_utf8(body))


def content_type(body_format: "BodyFormat | str") -> str:
    """Map a body format to its MIME type."""
    value = getattr(body_format, "value", body_format)
    return "text/html" if value == "html" else "text/plain"


def render_message(message: "Message", boundaries: Optional[BoundaryGenerator] = None) -> str:
    """Render ``message`` into the complete DATA payload.

    Raises:
        MissingSenderError: if the message has no sender.
    """
    if not message.sender:
        raise MissingSenderError()

    lines = [
        f"From: <{message.sender}>",
        f"Reply-To: {message.reply_to or message.sender}",
    ]
    for header, addresses in (("To", message.to), ("Cc", message.cc), ("Bcc", message.bcc)):
        if addresses:
            lines.append(f"{header}: {','.join(addresses)}")
    lines.extend(subject_lines(message.subject))
    lines.append("MIME-Version: 1.0")

    body_headers = [
        f"Content-Type: {content_type(message.format)}; charset=utf-8",
        "Content-Transfer-Encoding: base64",
        "",
        encode_body(message.body),
    ]
    attachments = message.attachments
    if not attachments:
        lines.extend(body_headers)
        return CRLF.join(lines) + CRLF

    boundary = (boundaries or BoundaryGenerator())()
    lines.append(f'Content-Type: multipart/mixed; boundary="{boundary}"')
    lines.append("")
    lines.append(f"--{boundary}")
    lines.extend(body_headers)
    for part in attachments:
        lines.append(f"--{boundary}")
        lines.extend(part.lines())
    lines.append(f"--{boundary}--")
    return CRLF.join(lines) + CRLF
