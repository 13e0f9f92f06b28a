"""Exception hierarchy raised by the message builder and the SMTP transport.

Every error carries a stable ``code`` so callers can branch on the failure
kind without matching on messages. SMTP-level failures also expose the
server reply code as ``smtp_code`` when one was received.
"""

from __future__ import annotations

from typing import Optional


class MailError(RuntimeError):
    """Base class for every failure surfaced by the package."""

    code = "mail_error"

    def __init__(self, message: str, *, smtp_code: Optional[int] = None):
        super().__init__(message)
        self.smtp_code = smtp_code


class MissingSenderError(MailError):
    """Raised when a message is rendered without a sender address."""

    code = "missing_sender"

    def __init__(self, message: str = "Message has no sender address"):
        super().__init__(message)


class MissingCredentialsError(MailError):
    """Raised when AUTH PLAIN is requested without both user and password."""

    code = "missing_credentials"

    def __init__(self, message: str = "SMTP user or password is not set"):
        super().__init__(message)


class NilMessageError(MailError):
    """Raised when ``send`` is called without a message."""

    code = "nil_message"

    def __init__(self, message: str = "No message to send"):
        super().__init__(message)


class AttachmentReadError(MailError):
    """Raised when attachment bytes cannot be read from their source."""

    code = "attachment_read_failure"


class DialError(MailError):
    """Raised when the SMTP server cannot be reached or greets with an error."""

    code = "dial_failure"


class StartTLSError(DialError):
    """Raised when the STARTTLS upgrade fails."""

    code = "starttls_failure"


class ProbeTimeoutError(MailError):
    """Raised when the connectivity probe does not complete in time."""

    code = "timeout_failure"


class AuthError(MailError):
    """Raised when the server rejects AUTH PLAIN."""

    code = "auth_failure"


class SenderRejectedError(MailError):
    """Raised when the server rejects MAIL FROM."""

    code = "sender_rejected"


class RecipientRejectedError(MailError):
    """Raised on the first RCPT TO the server refuses."""

    code = "recipient_rejected"

    def __init__(self, message: str, *, recipient: str, smtp_code: Optional[int] = None):
        super().__init__(message, smtp_code=smtp_code)
        self.recipient = recipient


class DataTransferError(MailError):
    """Raised when DATA, or the closing QUIT, is not accepted."""

    code = "data_transfer_failure"
