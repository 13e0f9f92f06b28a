"""Single-shot SMTP delivery on top of aiosmtplib.

Every call to :meth:`SMTPTransport.send` opens one connection, runs one
session plan and closes the connection before returning. The plan is
chosen from the endpoint configuration:

=========  ==========  ================
auth       start_tls   plan
=========  ==========  ================
none       any         relay
plain      False       submission
plain      True        tls-submission
=========  ==========  ================
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

import aiosmtplib

from .errors import (
    AuthError,
    DataTransferError,
    DialError,
    MailError,
    MissingCredentialsError,
    NilMessageError,
    ProbeTimeoutError,
    RecipientRejectedError,
    SenderRejectedError,
    StartTLSError,
)
from .logger import get_logger
from .mime import BoundaryGenerator
from .models import AuthMode, Message, SMTPEndpoint

SMTP_OK = 250


@dataclass(frozen=True)
class SessionPlan:
    """Steps enabled for one SMTP session."""

    name: str
    authenticate: bool
    start_tls: bool


RELAY = SessionPlan("relay", authenticate=False, start_tls=False)
SUBMISSION = SessionPlan("submission", authenticate=True, start_tls=False)
TLS_SUBMISSION = SessionPlan("tls-submission", authenticate=True, start_tls=True)


def select_session(endpoint: SMTPEndpoint) -> SessionPlan:
    """Return the session plan matching the endpoint configuration."""
    if endpoint.auth != AuthMode.PLAIN:
        return RELAY
    if endpoint.start_tls:
        return TLS_SUBMISSION
    return SUBMISSION


@dataclass
class DeliveryResult:
    """Outcome of a successful send."""

    plan: str
    recipients: List[str] = field(default_factory=list)
    response: str = ""


def _is_accepted_quit(exc: aiosmtplib.SMTPResponseException) -> bool:
    # Some servers answer QUIT with "250 2.0.0 ..." once the mail is queued.
    return exc.code == SMTP_OK and str(exc.message).startswith("2.0.0")


class SMTPTransport:
    """Deliver :class:`Message` objects to one SMTP endpoint."""

    def __init__(self, endpoint: SMTPEndpoint, *, boundaries: Optional[BoundaryGenerator] = None):
        self.endpoint = endpoint
        self.boundaries = boundaries
        self.logger = get_logger("AsyncMailSender.transport")

    def _client(self, timeout: Optional[float] = None) -> aiosmtplib.SMTP:
        """Build an unconnected client. TLS is negotiated explicitly, never implicitly."""
        return aiosmtplib.SMTP(
            hostname=self.endpoint.host,
            port=self.endpoint.port,
            use_tls=False,
            start_tls=False,
            timeout=timeout if timeout is not None else self.endpoint.timeout,
        )

    # ------------------------------------------------------------ diagnostics
    async def ping(self, timeout: float = 1.0) -> None:
        """Check that the endpoint answers within ``timeout`` seconds.

        The dial and a timer race; whichever finishes first decides the
        outcome and the other one is cancelled.

        Raises:
            DialError: the dial finished first and failed.
            ProbeTimeoutError: the timer finished first.
        """
        smtp = self._client(timeout=max(timeout, self.endpoint.timeout))
        dial = asyncio.ensure_future(smtp.connect())
        timer = asyncio.ensure_future(asyncio.sleep(timeout))
        try:
            done, _ = await asyncio.wait({dial, timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (dial, timer):
                if not task.done():
                    task.cancel()

        if dial not in done:
            await asyncio.gather(dial, return_exceptions=True)
            smtp.close()
            raise ProbeTimeoutError(
                f"'{self.endpoint.address}' did not answer within {timeout:g}s"
            )
        exc = dial.exception()
        if exc is not None:
            raise DialError(f"'{self.endpoint.address}' connection refused: {exc}") from exc
        smtp.close()
        self.logger.debug("Ping to %s succeeded", self.endpoint.address)

    async def validate(self, timeout: float = 1.0) -> None:
        """Check credentials (no I/O) and then reachability of the endpoint."""
        self.endpoint.check_credentials()
        await self.ping(timeout)

    # ---------------------------------------------------------------- sending
    async def send(self, message: Optional[Message]) -> DeliveryResult:
        """Deliver ``message`` using the session plan selected by the endpoint."""
        if message is None:
            raise NilMessageError()
        return await self._run_session(message, select_session(self.endpoint))

    async def _run_session(self, message: Message, plan: SessionPlan) -> DeliveryResult:
        """Render, dial, optionally upgrade and authenticate, then deliver."""
        payload = message.render(self.boundaries)
        if plan.authenticate and not self.endpoint.has_credentials:
            raise MissingCredentialsError()

        self.logger.debug("Opening %s session to %s", plan.name, self.endpoint.address)
        smtp = self._client()
        try:
            await self._dial(smtp)
            if plan.start_tls:
                await self._start_tls(smtp)
            if plan.authenticate:
                await self._authenticate(smtp)
            recipients = await self._envelope(smtp, message)
            response = await self._transfer(smtp, payload)
            await self._terminate(smtp)
        except MailError as exc:
            self.logger.warning(
                "Delivery to %s failed (%s): %s", self.endpoint.address, exc.code, exc
            )
            raise
        finally:
            if smtp.is_connected:
                smtp.close()

        self.logger.info(
            "Delivered message from %s to %d recipient(s) via %s",
            message.sender,
            len(recipients),
            self.endpoint.address,
        )
        return DeliveryResult(plan=plan.name, recipients=recipients, response=response)

    async def _dial(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.connect()
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise DialError(
                f"dial error = [{self.endpoint.address}]. error = {exc}",
                smtp_code=getattr(exc, "code", None),
            ) from exc

    async def _start_tls(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.starttls(validate_certs=not self.endpoint.insecure)
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise StartTLSError(
                f"STARTTLS with {self.endpoint.address} failed: {exc}",
                smtp_code=getattr(exc, "code", None),
            ) from exc

    async def _authenticate(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            if smtp.is_ehlo_or_helo_needed:
                await smtp.ehlo()
            await smtp.auth_plain(self.endpoint.user, self.endpoint.password)
        except aiosmtplib.SMTPResponseException as exc:
            raise AuthError(f"AUTH PLAIN rejected: {exc.message}", smtp_code=exc.code) from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise AuthError(f"AUTH PLAIN failed: {exc}") from exc

    async def _envelope(self, smtp: aiosmtplib.SMTP, message: Message) -> List[str]:
        """Send MAIL FROM and one RCPT TO per recipient, stopping at the first refusal."""
        try:
            await smtp.mail(message.sender)
        except aiosmtplib.SMTPResponseException as exc:
            raise SenderRejectedError(
                f"MAIL FROM <{message.sender}> rejected: {exc.message}", smtp_code=exc.code
            ) from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise SenderRejectedError(f"MAIL FROM <{message.sender}> failed: {exc}") from exc

        accepted: List[str] = []
        for recipient in message.recipients:
            try:
                await smtp.rcpt(recipient)
            except aiosmtplib.SMTPResponseException as exc:
                raise RecipientRejectedError(
                    f"RCPT TO <{recipient}> rejected: {exc.message}",
                    recipient=recipient,
                    smtp_code=exc.code,
                ) from exc
            except (aiosmtplib.SMTPException, OSError) as exc:
                raise RecipientRejectedError(
                    f"RCPT TO <{recipient}> failed: {exc}", recipient=recipient
                ) from exc
            accepted.append(recipient)
        return accepted

    async def _transfer(self, smtp: aiosmtplib.SMTP, payload: str) -> str:
        try:
            response = await smtp.data(payload.encode("utf-8"))
        except aiosmtplib.SMTPResponseException as exc:
            raise DataTransferError(f"DATA rejected: {exc.message}", smtp_code=exc.code) from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise DataTransferError(f"DATA failed: {exc}") from exc
        return response.message

    async def _terminate(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.quit()
        except aiosmtplib.SMTPResponseException as exc:
            if _is_accepted_quit(exc):
                self.logger.debug("Tolerating QUIT reply %s %s", exc.code, exc.message)
                return
            raise DataTransferError(f"QUIT rejected: {exc.message}", smtp_code=exc.code) from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise DataTransferError(f"QUIT failed: {exc}") from exc
