"""Command-line interface for async-mail-sender.

Usage:
    async-mail-sender ping --host smtp.example.com --port 25
    async-mail-sender send --host smtp.example.com --from a@x.com --to b@x.com \\
        --subject "Hi" --body "Hello" --attach report.pdf

    # Submission with credentials read from config.ini and AMS_SMTP_* variables
    async-mail-sender send --config config.ini --from a@x.com --to b@x.com --body-file body.html --html
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

import click
from rich.console import Console

from .attachments import FilesystemFetcher, attach_from
from .config_loader import load_endpoint_from_config
from .errors import MailError
from .models import AuthMode, BodyFormat, Message, SMTPEndpoint
from .smtp_transport import SMTPTransport

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def endpoint_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the SMTP endpoint options shared by every command."""
    options = [
        click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), default=None,
                     help="INI file with an [smtp] section."),
        click.option("--host", "-h", default=None, help="SMTP server host."),
        click.option("--port", "-p", type=int, default=None, help="SMTP server port."),
        click.option("--user", "-u", default=None, help="Username for AUTH PLAIN."),
        click.option("--password", default=None, help="Password for AUTH PLAIN."),
        click.option("--auth", type=click.Choice([m.value for m in AuthMode]), default=None,
                     help="Authentication mode."),
        click.option("--start-tls/--no-start-tls", default=None,
                     help="Upgrade the connection with STARTTLS (default: from config)."),
        click.option("--insecure/--secure", default=None,
                     help="Skip certificate validation (default: from config)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load_endpoint(
    config_path: Optional[str],
    host: Optional[str],
    port: Optional[int],
    user: Optional[str],
    password: Optional[str],
    auth: Optional[str],
    start_tls: Optional[bool],
    insecure: Optional[bool],
) -> SMTPEndpoint:
    """Merge config file, environment and command-line options."""
    try:
        return load_endpoint_from_config(
            config_path,
            host=host,
            port=port,
            user=user,
            password=password,
            auth=auth,
            start_tls=start_tls,
            insecure=insecure,
        )
    except (ValueError, FileNotFoundError) as e:
        print_error(str(e))
        sys.exit(1)


@click.group()
@click.version_option(package_name="async-mail-sender")
@click.option("--log-level", default=lambda: os.getenv("AMS_LOG_LEVEL", "WARNING"),
              help="Logging level (default: $AMS_LOG_LEVEL or WARNING).")
def main(log_level: str) -> None:
    """Compose and send mail over SMTP."""
    logging.basicConfig(
        level=getattr(logging, str(log_level).upper(), logging.WARNING),
        format='[%(asctime)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True,
    )


@main.command("ping")
@endpoint_options
@click.option("--timeout", "-t", type=float, default=1.0, show_default=True,
              help="Seconds to wait for the server greeting.")
@click.option("--validate", is_flag=True, help="Also check that credentials are configured.")
def ping_cmd(config_path, host, port, user, password, auth, start_tls, insecure,
             timeout: float, validate: bool) -> None:
    """Check that the SMTP server answers.

    Example:

        async-mail-sender ping --host smtp.example.com --timeout 0.5
    """
    endpoint = _load_endpoint(config_path, host, port, user, password, auth, start_tls, insecure)
    transport = SMTPTransport(endpoint)
    try:
        run_async(transport.validate(timeout) if validate else transport.ping(timeout))
    except MailError as e:
        print_error(str(e))
        sys.exit(1)
    print_success(f"{endpoint.address} is reachable")


@main.command("send")
@endpoint_options
@click.option("--from", "sender", required=True, help="Sender address.")
@click.option("--reply-to", default="", help="Reply-To address (default: sender).")
@click.option("--to", multiple=True, help="Recipient (repeatable).")
@click.option("--cc", multiple=True, help="Carbon-copy recipient (repeatable).")
@click.option("--bcc", multiple=True, help="Blind carbon-copy recipient (repeatable).")
@click.option("--subject", "-s", default="", help="Subject line.")
@click.option("--body", "-b", default=None, help="Body text.")
@click.option("--body-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Read the body from a UTF-8 file.")
@click.option("--html", is_flag=True, help="Send the body as text/html.")
@click.option("--attach", "-a", "attachments", multiple=True, help="File to attach (repeatable).")
def send_cmd(config_path, host, port, user, password, auth, start_tls, insecure,
             sender: str, reply_to: str, to: Tuple[str, ...], cc: Tuple[str, ...],
             bcc: Tuple[str, ...], subject: str, body: Optional[str], body_file: Optional[str],
             html: bool, attachments: Tuple[str, ...]) -> None:
    """Send one message.

    Example:

        async-mail-sender send --host localhost --from a@x.com --to b@x.com -s Hi -b Hello
    """
    endpoint = _load_endpoint(config_path, host, port, user, password, auth, start_tls, insecure)

    if body_file:
        body = Path(body_file).read_text(encoding="utf-8")

    try:
        message = Message(
            sender=sender,
            reply_to=reply_to,
            to=list(to),
            cc=list(cc),
            bcc=list(bcc),
            subject=subject,
            body=body or "",
            format=BodyFormat.HTML if html else BodyFormat.PLAIN,
        )
    except ValueError as e:
        print_error(str(e))
        sys.exit(1)

    async def _send():
        fetcher = FilesystemFetcher()
        for path in attachments:
            await attach_from(message, fetcher, path)
        return await SMTPTransport(endpoint).send(message)

    try:
        result = run_async(_send())
    except MailError as e:
        print_error(f"{e} ({e.code})")
        sys.exit(1)
    except ValueError as e:
        print_error(str(e))
        sys.exit(1)
    print_success(
        f"Sent to {len(result.recipients)} recipient(s) via {endpoint.address} ({result.plan})"
    )


if __name__ == "__main__":
    main()
