"""Unit tests for the network behavior heuristics."""

from __future__ import annotations

import pytest

from binscope.domain.models import NetworkProfile
from binscope.enrichment.network import (
    HTTP_SUMMARY,
    IDLE_SUMMARY,
    NetworkBehaviorPass,
    analyze_network,
    extract_host,
    is_upload_flag,
)
from binscope.enrichment.signatures import default_signatures

from . import checkpoint_ids, make_context

_SIGNATURES = default_signatures()


@pytest.mark.parametrize(
    ("argument", "expected"),
    [
        ("https://pypi.org/simple/", "pypi.org"),
        ("http://example.com:8080/x", "example.com"),
        ("url=https://a.example", "a.example"),
        ("ftp://files.example/pub", None),
        ("https://", None),
        ("plain", None),
    ],
)
def test_extract_host(argument: str, expected: str | None) -> None:
    assert extract_host(argument) == expected


@pytest.mark.parametrize(
    ("argument", "expected"),
    [("-T", True), ("-d", True), ("--data=@body.json", True), ("--dry-run", False), ("-dx", False)],
)
def test_upload_flags(argument: str, expected: bool) -> None:
    assert is_upload_flag(argument, _SIGNATURES.upload_flags) is expected


def test_idle_tool_keeps_the_perfect_score() -> None:
    profile = analyze_network("hello", [], signatures=_SIGNATURES)

    assert profile.summary == IDLE_SUMMARY
    assert profile.connections_detected == 0
    assert profile.network_score == 10


def test_upload_with_a_download_tool_is_suspicious() -> None:
    profile = analyze_network(
        "curl", ["-T", "report.txt", "https://upload.example.com/put"], signatures=_SIGNATURES
    )

    assert profile.connections_detected == 1
    assert profile.http_requests == 2
    assert profile.external_hosts == ["upload.example.com"]
    assert profile.data_upload is True
    assert profile.suspicious is True
    assert profile.summary == HTTP_SUMMARY
    assert profile.network_score == 6


def test_package_manager_downloads_record_the_repository() -> None:
    profile = analyze_network(
        "pip", ["install", "--index-url", "https://pypi.org/simple", "requests"], signatures=_SIGNATURES
    )

    assert profile.package_downloads is True
    assert profile.repository_urls == ["PyPI"]
    assert profile.http_requests == 3
    assert profile.network_score == 8


def test_observed_connections_count_as_activity() -> None:
    profile = NetworkProfile()
    profile.add_observed_connection("10.0.0.5:5432")

    analyze_network("hello", [], signatures=_SIGNATURES, profile=profile)

    assert profile.connections_detected == 1
    assert profile.summary == "Established connections observed during execution"
    assert profile.network_score == 8


def test_url_arguments_alone_do_not_lower_the_score() -> None:
    argv = [f"http://host{index:02d}.example.org/" for index in range(12)]

    profile = analyze_network("client", argv, signatures=_SIGNATURES)

    assert profile.http_requests == 12
    assert len(profile.external_hosts) == 10
    assert profile.connections_detected == 0
    assert profile.network_score == 10


def test_many_hosts_and_requests_lower_an_active_score() -> None:
    argv = [f"http://host{index:02d}.example.org/" for index in range(12)]

    profile = analyze_network("wget", argv, signatures=_SIGNATURES)

    assert profile.network_score == 6


def test_pass_flags_suspicious_activity() -> None:
    context = make_context("/usr/bin/curl", ("--data", "x=1", "https://collect.example/"))

    NetworkBehaviorPass().run(context)

    assert context.result.network.suspicious is True
    assert checkpoint_ids(context) == [
        "NET: behavior_analyzed",
        "SEC: suspicious_network_activity",
    ]
