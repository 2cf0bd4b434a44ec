"""Tests for notification templates."""

import pytest

from procgov.models import ActionKind
from procgov.templates import COMMAND_WIDTH, TEMPLATES, JobInfo

from conftest import make_sample


def test_job_info_from_sample():
    sample = make_sample(pid=99, owner="bob", cpu_percent=55.25, memory_percent=10.0, elapsed_seconds=3725)
    job = JobInfo.from_sample(sample, hostname="compute1")

    assert job.pid == 99
    assert job.user == "bob"
    assert job.elapsed == "01:02:05"
    assert job.hostname == "compute1"


def test_long_commands_are_truncated():
    sample = make_sample(command_line="/usr/bin/python3 " + "x" * 200)
    job = JobInfo.from_sample(sample, hostname="compute1")

    assert len(job.command) == COMMAND_WIDTH
    assert job.command.endswith("...")


def test_every_acting_kind_has_templates():
    assert set(TEMPLATES) == {ActionKind.RENICE, ActionKind.KILL_CPU, ActionKind.KILL_MEMORY}
    assert ActionKind.NONE not in TEMPLATES


@pytest.mark.parametrize("kind", [ActionKind.RENICE, ActionKind.KILL_CPU, ActionKind.KILL_MEMORY])
def test_templates_mention_the_job(kind):
    job = JobInfo.from_sample(make_sample(pid=1234, owner="carol"), hostname="compute1")
    subject, body = (render(job) for render in TEMPLATES[kind])

    assert "1234" in subject
    assert "compute1" in subject
    assert "carol" in body
    assert job.command in body
