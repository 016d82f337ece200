"""Unit tests for the streaming output token scanner."""

from __future__ import annotations

import pytest
from hypothesis import given, settings, strategies as st

from binscope.domain.models import IoStats
from binscope.sandbox.scanner import OutputScanner, Stream

_ALPHABET = st.sampled_from(
    [b"error", b"ERROR", b"warning", b"verbose", b"==>", b"<==", b"x", b" ", b"\n", b"err", b"or"]
)


def _single_pass(data: bytes) -> IoStats:
    scanner = OutputScanner()
    scanner.feed(Stream.STDOUT, data)
    return scanner.stats


@settings(max_examples=25, derandomize=True, deadline=None)
@given(
    pieces=st.lists(_ALPHABET, max_size=30),
    cuts=st.lists(st.integers(min_value=0, max_value=200), max_size=8),
)
def test_chunking_never_changes_the_counts(pieces: list[bytes], cuts: list[int]) -> None:
    data = b"".join(pieces)
    boundaries = sorted({min(cut, len(data)) for cut in cuts} | {0, len(data)})
    scanner = OutputScanner()
    for start, end in zip(boundaries, boundaries[1:], strict=False):
        scanner.feed(Stream.STDOUT, data[start:end])

    expected = _single_pass(data)
    assert scanner.stats.stdout_bytes == len(data)
    assert scanner.stats.verbose_msgs == expected.verbose_msgs
    assert scanner.stats.error_msgs == expected.error_msgs
    assert scanner.stats.warning_msgs == expected.warning_msgs


def test_token_split_across_chunks_is_counted_once() -> None:
    scanner = OutputScanner()

    first = scanner.feed(Stream.STDERR, b"fatal err")
    second = scanner.feed(Stream.STDERR, b"or: disk full")

    assert first.errors == 0
    assert second.errors == 1
    assert scanner.stats.error_msgs == 1
    assert scanner.stats.stderr_bytes == len(b"fatal error: disk full")


def test_streams_keep_independent_carry_over() -> None:
    scanner = OutputScanner()

    scanner.feed(Stream.STDOUT, b"warn")
    scanner.feed(Stream.STDERR, b"ing")

    assert scanner.stats.warning_msgs == 0
    assert scanner.stats.stdout_bytes == 4
    assert scanner.stats.stderr_bytes == 3


def test_tokens_are_case_sensitive_per_table() -> None:
    delta = OutputScanner().feed(
        "stdout", b"Error ERROR error Warning WARNING VERBOSE verbose ==> <=="
    )

    assert delta.errors == 2
    assert delta.warnings == 1
    assert delta.verbose == 4


def test_empty_chunk_is_a_no_op() -> None:
    scanner = OutputScanner()

    delta = scanner.feed(Stream.STDOUT, b"")

    assert delta.byte_count == 0
    assert scanner.stats == IoStats()


def test_scanner_updates_a_shared_stats_record() -> None:
    stats = IoStats(stdout_bytes=10)
    scanner = OutputScanner(stats)

    scanner.feed(Stream.STDOUT, b"verbose")

    assert stats.stdout_bytes == 17
    assert stats.verbose_msgs == 1


def test_unknown_stream_name_is_rejected() -> None:
    with pytest.raises(ValueError):
        OutputScanner().feed("stdin", b"data")
