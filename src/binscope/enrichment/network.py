"""Network behavior pass: tool heuristics, URL arguments, repository hosts, observed sockets."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Final

from binscope.domain.models import CheckpointCategory, NetworkProfile
from binscope.enrichment.base import NETWORK_GATE, EnrichmentContext, FeatureGatedPass
from binscope.enrichment.signatures import SignatureRegistry

URL_SCHEMES: Final[tuple[str, ...]] = ("http://", "https://")
IDLE_SUMMARY: Final[str] = "No network activity detected"
HTTP_SUMMARY: Final[str] = "HTTP requests detected - network tool"
OBSERVED_SUMMARY: Final[str] = "Established connections observed during execution"
HOSTS_TEXT_LIMIT: Final[int] = 100


def extract_host(argument: str) -> str | None:
    """Host of the first ``scheme://host[:port][/path]`` in ``argument``."""

    if not any(scheme in argument for scheme in URL_SCHEMES):
        return None
    _, separator, rest = argument.partition("://")
    if not separator:
        return None
    end = len(rest)
    for delimiter in ("/", ":"):
        index = rest.find(delimiter)
        if index != -1:
            end = min(end, index)
    host = rest[:end]
    return host or None


def is_upload_flag(argument: str, flags: Iterable[str]) -> bool:
    for flag in flags:
        if argument == flag:
            return True
        if flag.startswith("--") and argument.startswith(f"{flag}="):
            return True
    return False


def analyze_network(
    basename: str,
    argv: Sequence[str],
    *,
    signatures: SignatureRegistry,
    profile: NetworkProfile | None = None,
) -> NetworkProfile:
    profile = profile if profile is not None else NetworkProfile()
    profile.summary = IDLE_SUMMARY

    for tool in signatures.network_tools:
        if any(marker in basename for marker in tool.markers):
            profile.connections_detected += tool.connections
            profile.http_requests += tool.http_requests
            profile.package_downloads = profile.package_downloads or tool.package_downloads
            profile.summary = tool.summary
            break

    if profile.observed_connections:
        profile.connections_detected += len(profile.observed_connections)
        if profile.summary == IDLE_SUMMARY:
            profile.summary = OBSERVED_SUMMARY

    url_requests = 0
    for argument in argv:
        host = extract_host(argument)
        if host is not None:
            url_requests += 1
            profile.add_host(host)
        if is_upload_flag(argument, signatures.upload_flags):
            profile.data_upload = True
        for repository in signatures.repositories:
            if repository.matches(argument):
                profile.package_downloads = True
                profile.add_repository(repository.label)
    if url_requests:
        profile.http_requests += url_requests
        profile.summary = HTTP_SUMMARY

    profile.network_score = network_score(profile)
    return profile


def network_score(profile: NetworkProfile) -> int:
    if profile.connections_detected <= 0:
        return 10
    score = 8
    if profile.http_requests > 5:
        score -= 1
    if profile.data_upload:
        score -= 2
        profile.suspicious = True
    if len(", ".join(profile.external_hosts)) > HOSTS_TEXT_LIMIT:
        score -= 1
    return max(1, min(10, score))


class NetworkBehaviorPass(FeatureGatedPass):
    name = "network_behavior"
    gate = NETWORK_GATE

    def run(self, context: EnrichmentContext) -> None:
        profile = analyze_network(
            context.basename,
            context.target_argv,
            signatures=context.signatures,
            profile=context.result.network,
        )
        context.checkpoints.log(
            "NET: behavior_analyzed",
            CheckpointCategory.NET,
            f"score={profile.network_score} connections={profile.connections_detected}",
        )
        if profile.suspicious:
            context.security_checkpoint("SEC: suspicious_network_activity", profile.summary)


__all__ = [
    "IDLE_SUMMARY",
    "NetworkBehaviorPass",
    "analyze_network",
    "extract_host",
    "is_upload_flag",
    "network_score",
]
