"""Shared test fixtures for the mbox_engine test suite."""

from __future__ import annotations

import itertools
import logging

import pytest
import structlog

from mbox_engine.config import ExportConfig, ParserConfig
from mbox_engine.export import MboxExporter
from mbox_engine.parser import MboxParser


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture
def parser_config() -> ParserConfig:
    return ParserConfig(
        progress_interval=10,
        subject_placeholder="(No Subject)",
        uid_prefix="test",
        generated_id_domain="mbox-engine",
    )


@pytest.fixture
def uid_factory():
    counter = itertools.count(1)
    return lambda: f"uid-{next(counter)}"


@pytest.fixture
def parser(parser_config: ParserConfig, uid_factory) -> MboxParser:
    return MboxParser(parser_config, uid_factory=uid_factory)


@pytest.fixture
def exporter() -> MboxExporter:
    return MboxExporter(ExportConfig(default_sender="MAILER-DAEMON", line_ending="lf"))


# ------------------------------------------------------------------
# Sample container builders
# ------------------------------------------------------------------


def _build_record(
    *,
    sender: str = "sender@example.com",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    subject: str | None = "Test Email",
    date: str | None = "Mon, 1 Jan 2024 10:00:00 +0000",
    message_id: str | None = "<test@example.com>",
    extra_headers: list[str] | None = None,
    body: str = "This is a test email body.",
) -> str:
    """Build one MBOX record (delimiter line included), ending in a newline."""
    lines = [f"From {sender} Mon Jan 01 10:00:00 2024", f"From: {from_addr}", f"To: {to_addr}"]
    if subject is not None:
        lines.append(f"Subject: {subject}")
    if date is not None:
        lines.append(f"Date: {date}")
    if message_id is not None:
        lines.append(f"Message-ID: {message_id}")
    lines.extend(extra_headers or [])
    lines.append("")
    lines.append(body)
    return "\n".join(lines) + "\n"


def _build_mbox(*records: str) -> str:
    """Join records with the blank separator line MBOX requires."""
    return "\n".join(records)


@pytest.fixture
def single_mbox() -> str:
    return _build_mbox(_build_record())


@pytest.fixture
def two_message_mbox() -> str:
    return _build_mbox(
        _build_record(
            sender="alice@example.com",
            from_addr="alice@example.com",
            to_addr="bob@example.com",
            subject="First Email",
            message_id="<1@example.com>",
            body="First body.",
        ),
        _build_record(
            sender="bob@example.com",
            from_addr="bob@example.com",
            to_addr="alice@example.com",
            subject="Second Email",
            message_id="<2@example.com>",
            body="Second body.",
        ),
    )


@pytest.fixture
def rich_mbox() -> str:
    """Container exercising repeated, folded and escaped content."""
    return _build_mbox(
        _build_record(
            subject="Quarterly report",
            extra_headers=[
                "Received: from a.example.com by b.example.com",
                "Received: from b.example.com by c.example.com",
                "Received: from c.example.com by d.example.com",
                "X-Long: first part",
                "  second part",
                "\tthird part",
            ],
            body=">From the archive\n>>From deeper\nFrom unescaped mid-paragraph\n\ntrailing text\n",
        ),
        _build_record(
            sender="carol@example.com",
            from_addr='"Doe, Carol" <carol@example.com>',
            to_addr="dave@example.com, Erin <erin@example.com>",
            subject=None,
            message_id=None,
            extra_headers=["In-Reply-To: <1@example.com>", "References: <0@example.com> <1@example.com>"],
            body="",
        ),
        _build_record(
            sender="frank@example.com",
            from_addr="frank@example.com",
            subject="Last one",
            date="not a date",
            message_id="<3@example.com>",
            body="Final words.",
        ),
    )
