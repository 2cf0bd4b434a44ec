"""Email notification of actions taken against a user's process."""

import logging
import smtplib
import subprocess
from collections.abc import Sequence
from email.message import EmailMessage
from typing import Protocol

from procgov.models import ActionDecision, ActionKind, ActionOutcome, ProcessSample
from procgov.templates import TEMPLATES, JobInfo

logger = logging.getLogger(__name__)

DEFAULT_SENDMAIL = ("/usr/sbin/sendmail", "-t", "-oi")
LOOKUP_TIMEOUT_SECONDS = 10.0
SEND_TIMEOUT_SECONDS = 60.0


class MailTransport(Protocol):
    """Delivers a message and returns any output the mailer produced."""

    def send(self, message: EmailMessage) -> str: ...


class SendmailTransport:
    """
    Pipe messages to a local sendmail binary.

    sendmail's exit status is not a reliable delivery signal, so whatever it
    writes to stdout or stderr is returned for the caller to inspect.
    """

    def __init__(self, command: Sequence[str] = DEFAULT_SENDMAIL) -> None:
        self._command = list(command)

    def send(self, message: EmailMessage) -> str:
        result = subprocess.run(
            self._command,
            input=message.as_bytes(),
            capture_output=True,
            timeout=SEND_TIMEOUT_SECONDS,
            check=False,
        )
        output = (result.stdout + result.stderr).decode(errors="replace").strip()
        if result.returncode != 0:
            output = f"exit status {result.returncode}: {output}".rstrip(": ")
        return output


class SmtpTransport:
    """Send messages through an SMTP relay."""

    def __init__(self, host: str = "localhost", port: int = 25) -> None:
        self._host = host
        self._port = port

    def send(self, message: EmailMessage) -> str:
        with smtplib.SMTP(self._host, self._port, timeout=SEND_TIMEOUT_SECONDS) as server:
            refused = server.send_message(message)
        if refused:
            return f"refused recipients: {', '.join(sorted(refused))}"
        return ""


def resolve_address(
    username: str,
    lookup_command: Sequence[str] | None = None,
    mail_domain: str | None = None,
) -> str:
    """
    Map a username to an email address.

    Runs ``lookup_command username`` when configured and uses its first output
    line. Any failure falls back to the raw username. A configured mail domain
    is appended to addresses without one.
    """
    address = username
    if lookup_command:
        try:
            result = subprocess.run(
                [*lookup_command, username],
                capture_output=True,
                text=True,
                timeout=LOOKUP_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("address lookup for %s failed: %s", username, exc)
        else:
            lines = result.stdout.strip().splitlines()
            if result.returncode == 0 and lines:
                address = lines[0].strip()
            else:
                logger.warning(
                    "address lookup for %s failed (exit %d), mailing username",
                    username,
                    result.returncode,
                )

    if mail_domain and "@" not in address:
        address = f"{address}@{mail_domain}"
    return address


def build_message(
    decision: ActionDecision,
    to: str,
    mail_from: str | None = None,
    bcc: Sequence[str] = (),
    hostname: str | None = None,
) -> EmailMessage:
    """Render the subject and body for a decision into a message."""
    subject_template, body_template = TEMPLATES[decision.kind]
    job = JobInfo.from_sample(decision.sample, hostname=hostname)

    message = EmailMessage()
    message["To"] = to
    if mail_from:
        message["From"] = mail_from
    if bcc:
        message["Bcc"] = ", ".join(bcc)
    message["Subject"] = subject_template(job)
    message.set_content(body_template(job))
    return message


class NotificationDispatcher:
    """
    Tells the process owner (and operators, via Bcc) what was done.

    Delivery is best-effort: every failure is logged as a warning and
    swallowed so that governance of other processes continues.
    """

    def __init__(
        self,
        transport: MailTransport,
        mail_from: str | None = None,
        mail_bcc: Sequence[str] = (),
        lookup_command: Sequence[str] | None = None,
        mail_domain: str | None = None,
        pretend: bool = False,
        hostname: str | None = None,
    ) -> None:
        self._transport = transport
        self._mail_from = mail_from
        self._mail_bcc = tuple(mail_bcc)
        self._lookup_command = lookup_command
        self._mail_domain = mail_domain
        self._pretend = pretend
        self._hostname = hostname

    def notify(
        self,
        decision: ActionDecision,
        outcome: ActionOutcome,
        sample: ProcessSample | None = None,
    ) -> None:
        """Send the mail for a completed action. Never raises."""
        if decision.kind is ActionKind.NONE or outcome.vanished or not outcome.succeeded:
            return
        sample = sample or decision.sample

        if self._pretend:
            logger.info("would mail %s about %s of pid %d", sample.owner, decision.kind.value, sample.pid)
            return

        try:
            to = resolve_address(sample.owner, self._lookup_command, self._mail_domain)
            message = build_message(
                decision, to, mail_from=self._mail_from, bcc=self._mail_bcc, hostname=self._hostname
            )
            output = self._transport.send(message)
        except Exception as exc:
            logger.warning("failed to notify %s about pid %d: %s", sample.owner, sample.pid, exc)
            return

        if output:
            logger.warning("mailer output while notifying %s (may not be delivered): %s", to, output)
        else:
            logger.info("notified %s about %s of pid %d", to, decision.kind.value, sample.pid)
