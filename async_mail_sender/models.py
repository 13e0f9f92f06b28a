"""Pydantic models for the SMTP endpoint and the outgoing message.

Models:
    - AuthMode: authentication mechanism selector
    - BodyFormat: plain text or HTML body
    - SMTPEndpoint: server address, credentials and TLS flags
    - Message: addresses, subject, body and accumulated attachments
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, BinaryIO, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationInfo, field_validator

from .errors import AttachmentReadError, MissingCredentialsError
from .mime import AttachmentPart, BoundaryGenerator, check_header_value, render_message


class AuthMode(str, Enum):
    """Authentication mechanisms supported by the transport.

    Attributes:
        NONE: No authentication (relay on port 25).
        PLAIN: AUTH PLAIN with the endpoint's user and password.
    """

    NONE = "none"
    PLAIN = "plain"


class BodyFormat(str, Enum):
    """MIME flavour of the message body."""

    PLAIN = "text"
    HTML = "html"


class SMTPEndpoint(BaseModel):
    """SMTP server configuration used for one or more sends.

    Attributes:
        host: SMTP server hostname or IP address.
        port: SMTP server port.
        user: Username for AUTH PLAIN.
        password: Password for AUTH PLAIN.
        start_tls: Upgrade the connection with STARTTLS after connecting.
        insecure: Accept any certificate during STARTTLS.
        auth: Authentication mechanism.
        timeout: Per-command timeout in seconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: Annotated[str, Field(min_length=1, description="SMTP server hostname")]
    port: Annotated[int, Field(default=25, ge=1, le=65535, description="SMTP server port")]
    user: Annotated[str | None, Field(default=None, description="SMTP username")]
    password: Annotated[str | None, Field(default=None, description="SMTP password")]
    start_tls: Annotated[bool, Field(default=False, description="Upgrade with STARTTLS")]
    insecure: Annotated[
        bool,
        Field(default=False, description="Skip certificate validation for STARTTLS"),
    ]
    auth: Annotated[AuthMode, Field(default=AuthMode.NONE, description="Authentication mode")]
    timeout: Annotated[float, Field(default=60.0, gt=0, description="Command timeout in seconds")]

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.user) and bool(self.password)

    def check_credentials(self) -> None:
        """Raise :class:`MissingCredentialsError` when AUTH PLAIN lacks credentials."""
        if self.auth == AuthMode.PLAIN and not self.has_credentials:
            raise MissingCredentialsError()


def _split_addresses(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(addr).strip() for addr in value if addr and str(addr).strip()]
    return value


class Message(BaseModel):
    """An outgoing email and its accumulated attachments.

    Recipient fields accept a list or a comma-separated string. Attachments
    are only ever appended through the ``attach_*`` methods.
    """

    model_config = ConfigDict(validate_assignment=True)

    sender: Annotated[str, Field(default="", description="Envelope and From address")]
    reply_to: Annotated[str, Field(default="", description="Reply-To address (defaults to sender)")]
    to: Annotated[list[str], Field(default_factory=list, description="Primary recipients")]
    cc: Annotated[list[str], Field(default_factory=list, description="Carbon-copy recipients")]
    bcc: Annotated[list[str], Field(default_factory=list, description="Blind carbon-copy recipients")]
    subject: Annotated[str, Field(default="", description="Subject line")]
    body: Annotated[str, Field(default="", description="Body text")]
    format: Annotated[BodyFormat, Field(default=BodyFormat.PLAIN, description="Body format")]

    _attachments: list[AttachmentPart] = PrivateAttr(default_factory=list)

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def split_addresses(cls, v: Any) -> Any:
        """Accept comma-separated strings as well as sequences."""
        return _split_addresses(v)

    @field_validator("sender", "reply_to", "to", "cc", "bcc")
    @classmethod
    def reject_line_breaks(cls, v: Any, info: ValidationInfo) -> Any:
        """Header values must stay on one line."""
        for value in v if isinstance(v, list) else [v]:
            check_header_value(value, info.field_name)
        return v

    @field_validator("format", mode="before")
    @classmethod
    def default_to_plain(cls, v: Any) -> Any:
        """Anything other than ``html`` renders as plain text."""
        if isinstance(v, BodyFormat):
            return v
        return BodyFormat.HTML if str(v).lower() == "html" else BodyFormat.PLAIN

    @property
    def recipients(self) -> list[str]:
        """Envelope recipients in To, Cc, Bcc order."""
        return [*self.to, *self.cc, *self.bcc]

    @property
    def attachments(self) -> tuple[AttachmentPart, ...]:
        return tuple(self._attachments)

    def attach_data(self, data: bytes, filename: str) -> None:
        """Append ``data`` as a base64 ``application/octet-stream`` part."""
        self._attachments.append(AttachmentPart.from_bytes(bytes(data), filename))

    def attach_file(self, path: str | Path, filename: Optional[str] = None) -> None:
        """Attach a file from the local filesystem.

        Raises:
            AttachmentReadError: if the file cannot be read.
        """
        file_path = Path(path)
        try:
            data = file_path.read_bytes()
        except OSError as exc:
            raise AttachmentReadError(f"Cannot read attachment {file_path}: {exc}") from exc
        self.attach_data(data, filename or file_path.name)

    def attach_stream(self, stream: Optional[BinaryIO], filename: str) -> None:
        """Attach the remaining content of an uploaded binary stream."""
        if stream is None:
            raise AttachmentReadError("Attachment stream is missing")
        try:
            data = stream.read()
        except (OSError, ValueError) as exc:
            raise AttachmentReadError(f"Cannot read attachment {filename}: {exc}") from exc
        self.attach_data(data, filename)

    def render(self, boundaries: Optional[BoundaryGenerator] = None) -> str:
        """Return the full DATA payload. See :func:`mime.render_message`."""
        return render_message(self, boundaries)
