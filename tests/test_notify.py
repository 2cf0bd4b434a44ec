"""Tests for notification dispatch and mail transports."""

import logging
import subprocess

import pytest

from procgov.models import ActionDecision, ActionKind, ActionOutcome
from procgov.notify import (
    NotificationDispatcher,
    SendmailTransport,
    build_message,
    resolve_address,
)

from conftest import FakeTransport, make_sample

DONE = ActionOutcome(succeeded=True, diagnostic="terminated")


def decision(kind: ActionKind = ActionKind.KILL_CPU, **sample_fields) -> ActionDecision:
    sample = make_sample(cpu_percent=55.0, memory_percent=10.0, elapsed_seconds=700, **sample_fields)
    return ActionDecision(kind=kind, sample=sample)


class TestResolveAddress:
    """Tests for username to address lookup."""

    def test_no_lookup_command_uses_username(self):
        assert resolve_address("alice") == "alice"

    def test_mail_domain_is_appended(self):
        assert resolve_address("alice", mail_domain="example.org") == "alice@example.org"

    def test_lookup_command_output_is_used(self):
        assert resolve_address("alice", ["printf", "%s@corp.example\n"]) == "alice@corp.example"

    def test_failed_lookup_falls_back_to_username(self):
        assert resolve_address("alice", ["false"], mail_domain="example.org") == "alice@example.org"

    def test_missing_lookup_binary_falls_back(self):
        assert resolve_address("alice", ["/nonexistent/user2mail"]) == "alice"

    def test_empty_output_falls_back(self):
        assert resolve_address("alice", ["true"]) == "alice"


class TestBuildMessage:
    """Tests for message rendering."""

    def test_headers(self):
        message = build_message(
            decision(ActionKind.KILL_MEMORY),
            "alice@example.org",
            mail_from="governor@example.org",
            bcc=["ops@example.org", "oncall@example.org"],
            hostname="compute1",
        )
        assert message["To"] == "alice@example.org"
        assert message["From"] == "governor@example.org"
        assert message["Bcc"] == "ops@example.org, oncall@example.org"
        assert "memory" in message["Subject"]
        assert "compute1" in message["Subject"]

    def test_optional_headers_omitted(self):
        message = build_message(decision(ActionKind.RENICE), "alice", hostname="compute1")
        assert message["From"] is None
        assert message["Bcc"] is None
        assert "4242" in message.get_content()


class TestNotificationDispatcher:
    """Tests for the dispatcher's best-effort contract."""

    def test_sends_to_owner(self):
        transport = FakeTransport()
        dispatcher = NotificationDispatcher(transport, mail_domain="example.org", hostname="compute1")

        dispatcher.notify(decision(), DONE)

        assert len(transport.sent) == 1
        assert transport.sent[0]["To"] == "alice@example.org"

    def test_pretend_skips_transport(self, caplog):
        transport = FakeTransport()
        dispatcher = NotificationDispatcher(transport, pretend=True, hostname="compute1")

        with caplog.at_level(logging.INFO, logger="procgov"):
            dispatcher.notify(decision(), DONE)

        assert transport.sent == []
        assert "would mail alice" in caplog.text

    @pytest.mark.parametrize(
        "outcome",
        [
            ActionOutcome(succeeded=False, diagnostic="process exited", vanished=True),
            ActionOutcome(succeeded=False, diagnostic="still alive"),
        ],
    )
    def test_unsuccessful_outcomes_are_not_mailed(self, outcome):
        transport = FakeTransport()
        NotificationDispatcher(transport, hostname="compute1").notify(decision(), outcome)
        assert transport.sent == []

    def test_none_decision_is_not_mailed(self):
        transport = FakeTransport()
        NotificationDispatcher(transport, hostname="compute1").notify(decision(ActionKind.NONE), DONE)
        assert transport.sent == []

    def test_mailer_output_logs_warning(self, caplog):
        transport = FakeTransport(output="alice... User unknown")
        dispatcher = NotificationDispatcher(transport, hostname="compute1")

        with caplog.at_level(logging.WARNING, logger="procgov"):
            dispatcher.notify(decision(), DONE)

        assert "User unknown" in caplog.text

    def test_transport_error_never_raises(self, caplog):
        transport = FakeTransport(error=OSError("connection refused"))
        dispatcher = NotificationDispatcher(transport, hostname="compute1")

        with caplog.at_level(logging.WARNING, logger="procgov"):
            dispatcher.notify(decision(), DONE)

        assert "connection refused" in caplog.text


class TestSendmailTransport:
    """Tests for the sendmail pipe."""

    def test_silent_mailer_returns_empty(self):
        message = build_message(decision(), "alice", hostname="compute1")
        assert SendmailTransport(["cat", "/dev/null"]).send(message) == ""

    def test_output_is_returned(self):
        message = build_message(decision(), "alice", hostname="compute1")
        assert "hello" in SendmailTransport(["echo", "hello"]).send(message)

    def test_nonzero_exit_is_reported(self):
        message = build_message(decision(), "alice", hostname="compute1")
        assert "exit status 1" in SendmailTransport(["false"]).send(message)

    def test_message_is_piped_to_stdin(self, monkeypatch):
        captured = {}

        def fake_run(command, **kwargs):
            captured["command"] = command
            captured["input"] = kwargs["input"]
            return subprocess.CompletedProcess(command, 0, stdout=b"", stderr=b"")

        monkeypatch.setattr(subprocess, "run", fake_run)
        message = build_message(decision(), "alice", hostname="compute1")
        SendmailTransport().send(message)

        assert captured["command"] == ["/usr/sbin/sendmail", "-t", "-oi"]
        assert b"To: alice" in captured["input"]
