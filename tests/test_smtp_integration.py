"""Tests with real SMTP servers using aiosmtpd."""

import asyncio
import email
import socket
import ssl
import time
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from aiosmtpd.controller import Controller
from aiosmtpd.smtp import AuthResult

from async_mail_sender.errors import (
    AuthError,
    DialError,
    MissingCredentialsError,
    ProbeTimeoutError,
    RecipientRejectedError,
    StartTLSError,
)
from async_mail_sender.models import Message, SMTPEndpoint
from async_mail_sender.smtp_transport import SMTPTransport

CERTS_DIR = Path(__file__).parent / "certs"


def get_free_port() -> int:
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


class CapturingHandler:
    """SMTP handler that captures received messages."""

    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self.rcpt_commands: list[str] = []

    async def handle_RCPT(self, server, session, envelope, address, rcpt_options):
        """Handle RCPT TO command."""
        self.rcpt_commands.append(address)
        if "@reject." in address:
            return "550 User not found"
        envelope.rcpt_tos.append(address)
        return "250 OK"

    async def handle_DATA(self, server, session, envelope):
        """Handle DATA command - capture the message."""
        self.messages.append({
            "from": envelope.mail_from,
            "to": list(envelope.rcpt_tos),
            "data": envelope.content,
        })
        return "250 Message accepted for delivery"


class Authenticator:
    """Accept a single user/password pair."""

    def __init__(self, user: bytes, password: bytes):
        self.user = user
        self.password = password

    def __call__(self, server, session, envelope, mechanism, auth_data):
        ok = auth_data.login == self.user and auth_data.password == self.password
        return AuthResult(success=ok, handled=False)


@pytest.fixture
def smtp_handler():
    """Create a fresh SMTP handler."""
    return CapturingHandler()


@pytest.fixture
def smtp_server(smtp_handler):
    """Start a fake relay SMTP server on a free port."""
    port = get_free_port()
    controller = Controller(smtp_handler, hostname="127.0.0.1", port=port)
    controller.start()
    yield controller, port
    controller.stop()


@pytest.fixture
def auth_smtp_server(smtp_handler):
    """Start a fake submission server that requires AUTH over plain text."""
    port = get_free_port()
    controller = Controller(
        smtp_handler,
        hostname="127.0.0.1",
        port=port,
        authenticator=Authenticator(b"mailer", b"secret"),
        auth_required=True,
        auth_require_tls=False,
    )
    controller.start()
    yield controller, port
    controller.stop()


@pytest.fixture
def tls_smtp_server(smtp_handler):
    """Start a fake submission server that requires STARTTLS before AUTH."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(CERTS_DIR / "server.crt", CERTS_DIR / "server.key")
    port = get_free_port()
    controller = Controller(
        smtp_handler,
        hostname="127.0.0.1",
        port=port,
        tls_context=context,
        require_starttls=True,
        authenticator=Authenticator(b"mailer", b"secret"),
        auth_required=True,
    )
    controller.start()
    yield controller, port
    controller.stop()


@pytest_asyncio.fixture
async def silent_server():
    """A TCP listener that accepts connections but never sends a greeting."""
    release = asyncio.Event()

    async def handle(reader, writer):
        await release.wait()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    release.set()
    await asyncio.sleep(0)
    server.close()
    await server.wait_closed()


def make_message(**kwargs) -> Message:
    values = {"sender": "a@x.com", "to": ["b@x.com"], "subject": "Hi", "body": "Hello"}
    values.update(kwargs)
    return Message(**values)


@pytest.mark.asyncio
async def test_relay_delivers_single_part(smtp_server, smtp_handler):
    _, port = smtp_server
    transport = SMTPTransport(SMTPEndpoint(host="127.0.0.1", port=port, timeout=5))

    result = await transport.send(make_message())

    assert result.plan == "relay"
    assert len(smtp_handler.messages) == 1
    received = smtp_handler.messages[0]
    assert received["from"] == "a@x.com"
    assert received["to"] == ["b@x.com"]

    parsed = email.message_from_bytes(received["data"])
    assert parsed.get_content_type() == "text/plain"
    assert parsed.get_content_charset() == "utf-8"
    assert parsed.get_payload(decode=True) == b"Hello"


@pytest.mark.asyncio
async def test_relay_delivers_attachment(smtp_server, smtp_handler):
    _, port = smtp_server
    message = make_message(cc=["c@x.com"])
    message.attach_data(b"\x00\xff\x10", "f.bin")

    await SMTPTransport(SMTPEndpoint(host="127.0.0.1", port=port, timeout=5)).send(message)

    assert smtp_handler.rcpt_commands == ["b@x.com", "c@x.com"]
    parsed = email.message_from_bytes(smtp_handler.messages[0]["data"])
    assert parsed.get_content_type() == "multipart/mixed"
    body, attachment = parsed.get_payload()
    assert body.get_payload(decode=True) == b"Hello"
    assert attachment.get_filename() == "f.bin"
    assert attachment.get_payload(decode=True) == b"\x00\xff\x10"


@pytest.mark.asyncio
async def test_recipient_rejection_stops_envelope(smtp_server, smtp_handler):
    _, port = smtp_server
    message = make_message(to=["ok@x.com", "nobody@reject.example", "later@x.com"])

    with pytest.raises(RecipientRejectedError) as excinfo:
        await SMTPTransport(SMTPEndpoint(host="127.0.0.1", port=port, timeout=5)).send(message)

    assert excinfo.value.recipient == "nobody@reject.example"
    assert excinfo.value.smtp_code == 550
    assert smtp_handler.rcpt_commands == ["ok@x.com", "nobody@reject.example"]
    assert smtp_handler.messages == []


@pytest.mark.asyncio
async def test_plain_submission_authenticates(auth_smtp_server, smtp_handler):
    _, port = auth_smtp_server
    endpoint = SMTPEndpoint(
        host="127.0.0.1", port=port, auth="plain", user="mailer", password="secret", timeout=5
    )

    result = await SMTPTransport(endpoint).send(make_message())

    assert result.plan == "submission"
    assert len(smtp_handler.messages) == 1


@pytest.mark.asyncio
async def test_plain_submission_wrong_password(auth_smtp_server, smtp_handler):
    _, port = auth_smtp_server
    endpoint = SMTPEndpoint(
        host="127.0.0.1", port=port, auth="plain", user="mailer", password="wrong", timeout=5
    )

    with pytest.raises(AuthError) as excinfo:
        await SMTPTransport(endpoint).send(make_message())

    assert excinfo.value.smtp_code == 535
    assert smtp_handler.messages == []


@pytest.mark.asyncio
async def test_send_to_closed_port_is_dial_error():
    port = get_free_port()
    with pytest.raises(DialError):
        await SMTPTransport(SMTPEndpoint(host="127.0.0.1", port=port, timeout=2)).send(make_message())


@pytest.mark.asyncio
async def test_ping_success(smtp_server):
    _, port = smtp_server
    await SMTPTransport(SMTPEndpoint(host="127.0.0.1", port=port)).ping(timeout=2.0)


@pytest.mark.asyncio
async def test_ping_closed_port_reports_dial_error():
    port = get_free_port()
    with pytest.raises(DialError):
        await SMTPTransport(SMTPEndpoint(host="127.0.0.1", port=port)).ping(timeout=2.0)


@pytest.mark.asyncio
async def test_ping_times_out_on_silent_server(silent_server):
    """A server that never greets loses the race against a 50ms timer."""
    transport = SMTPTransport(SMTPEndpoint(host="127.0.0.1", port=silent_server))
    started = time.monotonic()
    with pytest.raises(ProbeTimeoutError) as excinfo:
        await transport.ping(timeout=0.05)
    elapsed = time.monotonic() - started
    assert excinfo.value.code == "timeout_failure"
    assert 0.04 <= elapsed < 1.0


@pytest.mark.asyncio
async def test_validate_checks_credentials_before_dialing(silent_server):
    endpoint = SMTPEndpoint(host="127.0.0.1", port=silent_server, auth="plain", user="u")
    with pytest.raises(MissingCredentialsError):
        await SMTPTransport(endpoint).validate(timeout=0.05)


@pytest.mark.asyncio
async def test_tls_submission_upgrades_then_authenticates(tls_smtp_server, smtp_handler):
    _, port = tls_smtp_server
    endpoint = SMTPEndpoint(
        host="127.0.0.1", port=port, auth="plain", user="mailer", password="secret",
        start_tls=True, insecure=True, timeout=5,
    )

    result = await SMTPTransport(endpoint).send(make_message())

    assert result.plan == "tls-submission"
    assert len(smtp_handler.messages) == 1
    assert smtp_handler.messages[0]["to"] == ["b@x.com"]


@pytest.mark.asyncio
async def test_tls_server_refuses_plain_submission(tls_smtp_server, smtp_handler):
    """Without STARTTLS the server refuses AUTH."""
    _, port = tls_smtp_server
    endpoint = SMTPEndpoint(
        host="127.0.0.1", port=port, auth="plain", user="mailer", password="secret", timeout=5,
    )

    with pytest.raises(AuthError):
        await SMTPTransport(endpoint).send(make_message())
    assert smtp_handler.messages == []


@pytest.mark.asyncio
async def test_tls_submission_rejects_self_signed_certificate(tls_smtp_server):
    _, port = tls_smtp_server
    endpoint = SMTPEndpoint(
        host="127.0.0.1", port=port, auth="plain", user="mailer", password="secret",
        start_tls=True, timeout=5,
    )

    with pytest.raises(StartTLSError):
        await SMTPTransport(endpoint).send(make_message())
