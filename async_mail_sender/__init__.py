"""Compose MIME mail and deliver it over a single SMTP session.

Usage:
    from async_mail_sender import Message, SMTPEndpoint, SMTPTransport

    endpoint = SMTPEndpoint(host="smtp.example.com", port=587,
                            user="me", password="secret",
                            auth="plain", start_tls=True)
    message = Message(sender="me@example.com", to=["you@example.com"],
                      subject="Hi", body="Hello")
    message.attach_file("report.pdf")
    await SMTPTransport(endpoint).send(message)
"""

from .errors import (
    AttachmentReadError,
    AuthError,
    DataTransferError,
    DialError,
    MailError,
    MissingCredentialsError,
    MissingSenderError,
    NilMessageError,
    ProbeTimeoutError,
    RecipientRejectedError,
    SenderRejectedError,
    StartTLSError,
)
from .mime import AttachmentPart, BoundaryGenerator
from .models import AuthMode, BodyFormat, Message, SMTPEndpoint
from .smtp_transport import DeliveryResult, SessionPlan, SMTPTransport, select_session

__version__ = "0.1.0"

__all__ = [
    "AttachmentPart",
    "AttachmentReadError",
    "AuthError",
    "AuthMode",
    "BodyFormat",
    "BoundaryGenerator",
    "DataTransferError",
    "DeliveryResult",
    "DialError",
    "MailError",
    "Message",
    "MissingCredentialsError",
    "MissingSenderError",
    "NilMessageError",
    "ProbeTimeoutError",
    "RecipientRejectedError",
    "SMTPEndpoint",
    "SMTPTransport",
    "SenderRejectedError",
    "SessionPlan",
    "StartTLSError",
    "select_session",
]
