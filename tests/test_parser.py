"""Tests for mbox_engine.parser."""

from __future__ import annotations

import threading
from datetime import UTC, datetime

import pytest

from mbox_engine.config import ParserConfig
from mbox_engine.errors import EmptyContainerError, ParseCancelledError, UnreadableContainerError
from mbox_engine.framer import split_records
from mbox_engine.models import ErrorKind, ProgressEvent
from mbox_engine.normalize import normalize_eol
from mbox_engine.parser import MboxParser, validate_container
from tests.conftest import _build_mbox, _build_record


def _assert_counts_match_framer(result, container: str) -> None:
    critical = result.errors_of(ErrorKind.CRITICAL_PARSE_FAILURE)
    assert len(result.messages) + len(critical) == len(split_records(normalize_eol(container)))


class TestBasicParsing:
    def test_single_email(self, parser, single_mbox):
        result = parser.parse(single_mbox)

        assert len(result.messages) == 1
        message = result.messages[0]
        assert message.metadata.subject == "Test Email"
        assert message.metadata.from_ == ["sender@example.com"]
        assert message.metadata.to == ["recipient@example.com"]
        assert message.message_id == "<test@example.com>"
        assert message.body.text == "This is a test email body."
        assert message.metadata.date == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
        assert result.errors == []

    def test_multiple_emails(self, parser, two_message_mbox):
        result = parser.parse(two_message_mbox)

        assert [m.metadata.subject for m in result.messages] == ["First Email", "Second Email"]
        assert [m.body.text for m in result.messages] == ["First body.", "Second body."]
        assert [m.uid for m in result.messages] == ["uid-1", "uid-2"]
        assert result.stats.total_emails == 2
        _assert_counts_match_framer(result, two_message_mbox)

    def test_missing_subject_uses_placeholder(self, parser):
        result = parser.parse(_build_mbox(_build_record(subject=None)))
        assert result.messages[0].metadata.subject == "(No Subject)"

    def test_custom_subject_placeholder(self, uid_factory):
        parser = MboxParser(ParserConfig(subject_placeholder="[untitled]"), uid_factory=uid_factory)
        result = parser.parse(_build_mbox(_build_record(subject="   ")))
        assert result.messages[0].metadata.subject == "[untitled]"

    def test_envelope_kept(self, parser, single_mbox):
        envelope = parser.parse(single_mbox).messages[0].envelope
        assert envelope is not None
        assert envelope.sender == "sender@example.com"
        assert envelope.trailer == "Mon Jan 01 10:00:00 2024"

    def test_default_uids_use_prefix(self, single_mbox):
        message = MboxParser(ParserConfig(uid_prefix="arch")).parse(single_mbox).messages[0]
        assert message.uid.startswith("arch-")

    def test_bytes_input(self, parser, two_message_mbox):
        result = parser.parse(two_message_mbox.encode("utf-8"))
        assert len(result.messages) == 2
        assert result.stats.total_bytes == len(two_message_mbox.encode("utf-8"))

    def test_crlf_container(self, parser, two_message_mbox):
        crlf = two_message_mbox.replace("\n", "\r\n")
        result = parser.parse(crlf)

        assert result.line_ending == "\r\n"
        assert [m.body.text for m in result.messages] == ["First body.", "Second body."]
        assert result.messages[0].headers.first("Subject") == "First Email"


class TestRichContainer:
    def test_repeated_and_folded_headers(self, parser, rich_mbox):
        message = parser.parse(rich_mbox).messages[0]

        assert message.headers.get_all("received") == [
            "from a.example.com by b.example.com",
            "from b.example.com by c.example.com",
            "from c.example.com by d.example.com",
        ]
        assert message.headers.first("X-Long") == "first part second part third part"
        assert message.headers.names() == [
            "from",
            "to",
            "subject",
            "date",
            "message-id",
            "received",
            "x-long",
        ]

    def test_body_unescaped(self, parser, rich_mbox):
        body = parser.parse(rich_mbox).messages[0].body
        assert body.raw == ">From the archive\n>>From deeper\nFrom unescaped mid-paragraph\n\ntrailing text\n"
        assert body.text == "From the archive\n>From deeper\nFrom unescaped mid-paragraph\n\ntrailing text\n"

    def test_unescaped_from_line_in_body_reported(self, parser, rich_mbox):
        result = parser.parse(rich_mbox)

        ambiguity = result.errors_of(ErrorKind.DELIMITER_AMBIGUITY)
        assert len(ambiguity) == 1
        assert ambiguity[0].record_index == 0
        assert ambiguity[0].context == "From unescaped mid-paragraph"
        assert ambiguity[0].recoverable
        assert len(result.messages) == 3

    def test_address_lists_and_threading(self, parser, rich_mbox):
        message = parser.parse(rich_mbox).messages[1]

        assert message.metadata.from_ == ["carol@example.com"]
        assert message.metadata.to == ["dave@example.com", "erin@example.com"]
        assert message.metadata.subject == "(No Subject)"
        assert message.metadata.in_reply_to == "<1@example.com>"
        assert message.metadata.references == ["<0@example.com>", "<1@example.com>"]
        assert message.body.text == ""

    def test_generated_message_id(self, parser, rich_mbox):
        messages = parser.parse(rich_mbox).messages
        assert messages[1].message_id == "<generated-0@mbox-engine>"
        assert messages[1].headers.first("Message-ID") is None
        assert messages[2].message_id == "<3@example.com>"

    def test_invalid_date_is_absent(self, parser, rich_mbox):
        message = parser.parse(rich_mbox).messages[2]
        assert message.metadata.date is None
        assert message.headers.first("Date") == "not a date"
        assert message.body.text == "Final words."

    def test_counts_match_framer(self, parser, rich_mbox):
        _assert_counts_match_framer(parser.parse(rich_mbox), rich_mbox)


class TestRecoverableErrors:
    def test_malformed_header_line_skipped(self, parser):
        mbox = "From a@b.c Mon Jan  1 10:00:00 2024\nSubject: ok\nthis is not a header\nTo: x@y.z\n\nbody\n"
        result = parser.parse(mbox)

        assert len(result.messages) == 1
        message = result.messages[0]
        assert message.headers.fields() == [("Subject", "ok"), ("To", "x@y.z")]
        assert message.body.text == "body"

        malformed = result.errors_of(ErrorKind.MALFORMED_HEADER)
        assert len(malformed) == 1
        assert malformed[0].context == "this is not a header"
        assert malformed[0].record_index == 0
        assert len(result.errors) == 1

    def test_malformed_record_does_not_affect_neighbours(self, parser):
        mbox = _build_mbox(
            _build_record(subject="one"),
            _build_record(subject="two", extra_headers=["broken header line"]),
            _build_record(subject="three"),
        )
        result = parser.parse(mbox)
        assert [m.metadata.subject for m in result.messages] == ["one", "two", "three"]
        assert [e.record_index for e in result.errors] == [1]

    def test_encoding_error(self, parser):
        mbox = b"From a@b.c Mon Jan  1 10:00:00 2024\nSubject: caf\xff\n\nbody\n"
        result = parser.parse(mbox)

        assert len(result.messages) == 1
        assert result.messages[0].metadata.subject == "caf\ufffd"
        encoding = result.errors_of(ErrorKind.ENCODING_ERROR)
        assert len(encoding) == 1
        assert encoding[0].recoverable

    def test_encoding_error_with_fallback(self, uid_factory):
        parser = MboxParser(ParserConfig(fallback_encoding="latin-1"), uid_factory=uid_factory)
        mbox = b"From a@b.c Mon Jan  1 10:00:00 2024\nSubject: caf\xe9\n\nbody\n"
        result = parser.parse(mbox)

        assert result.messages[0].metadata.subject == "café"
        assert len(result.errors_of(ErrorKind.ENCODING_ERROR)) == 1

    def test_leading_content_recovered(self, parser):
        mbox = "Subject: orphan\n\norphan body\n\n" + _build_record(subject="framed")
        result = parser.parse(mbox)

        assert [m.metadata.subject for m in result.messages] == ["orphan", "framed"]
        assert result.messages[0].envelope is None
        assert result.messages[0].body.text == "orphan body"
        ambiguity = result.errors_of(ErrorKind.DELIMITER_AMBIGUITY)
        assert len(ambiguity) == 1
        assert ambiguity[0].record_index == 0
        assert ambiguity[0].context == "Subject: orphan"
        _assert_counts_match_framer(result, mbox)

    def test_leading_content_after_blank_lines_keeps_its_headers(self, parser):
        mbox = "\n\nSubject: recovered\nFrom: x@y.z\n\nbody\n\n" + _build_record(subject="framed")
        result = parser.parse(mbox)

        recovered = result.messages[0]
        assert recovered.metadata.subject == "recovered"
        assert recovered.headers.fields() == [("Subject", "recovered"), ("From", "x@y.z")]
        assert recovered.body.text == "body"
        assert [e.kind for e in result.errors] == [ErrorKind.DELIMITER_AMBIGUITY]
        assert result.errors[0].context == "Subject: recovered"

    def test_out_of_range_date_keeps_the_message(self, parser):
        mbox = _build_mbox(_build_record(subject="far future", date="Fri, 31 Dec 9999 23:30:00 -0100"))
        result = parser.parse(mbox)

        assert [m.metadata.subject for m in result.messages] == ["far future"]
        assert result.messages[0].metadata.date is None
        assert result.errors == []

    def test_blank_leading_content_ignored(self, parser, single_mbox):
        result = parser.parse("\n\n" + single_mbox)
        assert len(result.messages) == 1
        assert result.errors == []


class TestCriticalFailures:
    def test_delimiter_only_record(self, parser):
        result = parser.parse("From a@b.c Mon Jan  1 10:00:00 2024\n")

        assert result.messages == []
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.kind is ErrorKind.CRITICAL_PARSE_FAILURE
        assert not error.recoverable
        assert error.context == "From a@b.c Mon Jan  1 10:00:00 2024"

    def test_leading_junk_dropped(self, parser):
        mbox = "garbage line\n\n" + _build_record(subject="kept")
        result = parser.parse(mbox)

        assert [m.metadata.subject for m in result.messages] == ["kept"]
        assert result.messages[0].record_index == 1
        critical = result.errors_of(ErrorKind.CRITICAL_PARSE_FAILURE)
        assert len(critical) == 1
        assert critical[0].record_index == 0
        _assert_counts_match_framer(result, mbox)

    def test_unexpected_exception_is_contained(self, parser, two_message_mbox, monkeypatch):
        calls = {"n": 0}
        original = parser._headers.parse

        def flaky(lines, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ValueError("boom")
            return original(lines, **kwargs)

        monkeypatch.setattr(parser._headers, "parse", flaky)
        result = parser.parse(two_message_mbox)

        assert [m.metadata.subject for m in result.messages] == ["Second Email"]
        critical = result.errors_of(ErrorKind.CRITICAL_PARSE_FAILURE)
        assert len(critical) == 1
        assert "boom" in critical[0].message


class TestContainerErrors:
    def test_empty_string(self, parser):
        with pytest.raises(EmptyContainerError):
            parser.parse("")

    def test_empty_bytes(self, parser):
        with pytest.raises(EmptyContainerError):
            parser.parse(b"")

    def test_not_text_or_bytes(self, parser):
        with pytest.raises(UnreadableContainerError):
            parser.parse(42)

    def test_whitespace_only(self, parser):
        result = parser.parse("   \n\n")
        assert result.messages == []
        assert result.errors == []
        assert result.stats.total_emails == 0
        assert result.stats.avg_email_size == 0.0
        assert result.stats.total_bytes == 5


class TestStats:
    def test_stats(self, parser, two_message_mbox):
        result = parser.parse(two_message_mbox)
        stats = result.stats
        assert stats.total_bytes == len(two_message_mbox)
        assert stats.avg_email_size == len(two_message_mbox) / 2
        assert stats.error_count == 0
        assert stats.parse_time >= 0.0

    def test_error_count(self, parser, rich_mbox):
        result = parser.parse(rich_mbox)
        assert result.stats.error_count == len(result.errors) == 1


class TestProgress:
    def test_interval_and_final_event(self, parser):
        mbox = _build_mbox(*[_build_record(subject=f"Message {i}") for i in range(25)])
        events: list[ProgressEvent] = []
        parser.parse(mbox, progress_callback=events.append)

        assert [e.records_processed for e in events] == [1, 11, 21, 25]
        assert events[-1].percent_complete == 100.0
        assert events[-1].bytes_processed > events[-2].bytes_processed
        assert events[0].current_subject == "Message 0"
        percents = [e.percent_complete for e in events]
        assert percents == sorted(percents)
        assert all(0.0 <= p <= 100.0 for p in percents)

    def test_single_record_reports_completion(self, parser, single_mbox):
        events: list[ProgressEvent] = []
        parser.parse(single_mbox, progress_callback=events.append)
        assert len(events) == 1
        assert events[0].percent_complete == 100.0

    def test_cancel_stops_parse(self, parser):
        mbox = _build_mbox(*[_build_record() for _ in range(5)])
        cancel = threading.Event()

        with pytest.raises(ParseCancelledError) as exc_info:
            parser.parse(mbox, progress_callback=lambda event: cancel.set(), cancel_event=cancel)
        assert exc_info.value.records_processed == 1


class TestParseMany:
    def test_merges_in_order(self, parser, two_message_mbox, single_mbox):
        events: list[ProgressEvent] = []
        result = parser.parse_many([two_message_mbox, single_mbox], progress_callback=events.append)

        assert [m.metadata.subject for m in result.messages] == ["First Email", "Second Email", "Test Email"]
        assert result.stats.total_bytes == len(two_message_mbox) + len(single_mbox)
        assert events[-1].percent_complete == 100.0
        assert events[-1].records_processed == 3
        percents = [e.percent_complete for e in events]
        assert percents == sorted(percents)


class TestValidateContainer:
    def test_valid(self, single_mbox):
        assert validate_container(single_mbox).valid

    def test_valid_bytes(self, single_mbox):
        verdict = validate_container(single_mbox.encode())
        assert verdict.valid
        assert verdict.error is None

    def test_invalid(self):
        verdict = validate_container("Subject: hello\n\nbody\n")
        assert not verdict.valid
        assert verdict.error == "File does not start with a valid MBOX From_ line"

    def test_empty(self):
        assert not validate_container("").valid
