"""Aggregate statistics over parse results and message sets."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from .models import MailboxSummary, Message, ParseError, ParseResult, ParseStats, SenderCount

TOP_SENDERS = 10


def average_size(total_bytes: int, total_emails: int) -> float:
    """``total_bytes / total_emails``; 0.0 when there are no emails."""
    if total_emails <= 0:
        return 0.0
    return total_bytes / total_emails


def compute_stats(
    messages: Sequence[Message],
    errors: Sequence[ParseError],
    *,
    total_bytes: int,
    parse_time: float,
) -> ParseStats:
    return ParseStats(
        total_emails=len(messages),
        total_bytes=total_bytes,
        avg_email_size=average_size(total_bytes, len(messages)),
        parse_time=parse_time,
        error_count=len(errors),
    )


def merge_results(results: Sequence[ParseResult]) -> ParseResult:
    """Combine the results of several containers, preserving order."""
    messages = [message for result in results for message in result.messages]
    errors = [error for result in results for error in result.errors]
    total_bytes = sum(result.stats.total_bytes for result in results)
    parse_time = sum(result.stats.parse_time for result in results)
    line_ending = results[0].line_ending if results else "\n"
    return ParseResult(
        messages=messages,
        errors=errors,
        stats=compute_stats(messages, errors, total_bytes=total_bytes, parse_time=parse_time),
        line_ending=line_ending,
    )


def summarize(messages: Sequence[Message]) -> MailboxSummary:
    """Date range, busiest senders and header frequency of *messages*."""
    if not messages:
        return MailboxSummary(total_count=0, average_size=0.0)

    dates = sorted(m.metadata.date for m in messages if m.metadata.date is not None)

    senders: Counter[str] = Counter()
    for message in messages:
        senders.update(message.metadata.from_)

    header_types: Counter[str] = Counter()
    for message in messages:
        header_types.update(message.headers.names())

    return MailboxSummary(
        total_count=len(messages),
        average_size=average_size(sum(m.raw_size for m in messages), len(messages)),
        earliest=dates[0] if dates else None,
        latest=dates[-1] if dates else None,
        top_senders=[
            SenderCount(address=address, count=count)
            for address, count in senders.most_common(TOP_SENDERS)
        ],
        header_types=dict(header_types),
    )
