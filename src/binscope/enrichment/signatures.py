"""
binscope — signature registry loader.

File: src/binscope/enrichment/signatures.py
Last updated: 2026-10-17

Purpose
- Load the packaged ``signatures.yaml`` into typed, immutable tables.

Functional requirements
- Structure errors name the offending location.
- The packaged registry is parsed once per process.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Final, cast

import yaml

_PACKAGE = "binscope.enrichment"
_RESOURCE = "signatures.yaml"

# profile risk key -> SecurityFindings attribute
RISK_FIELDS: Final[Mapping[str, str]] = {
    "buffer_overflow": "buffer_overflow_risk",
    "use_after_free": "use_after_free_risk",
    "format_string": "format_string_risk",
    "null_pointer": "null_pointer_risk",
    "integer_overflow": "integer_overflow_risk",
    "uninitialized_memory": "uninitialized_memory_risk",
    "memory_leak": "memory_leak_risk",
}
_CONDITION_KEYS: Final[tuple[str, ...]] = ("basename", "path", "manifest", "strings")


class SignatureRegistryError(ValueError):
    """Raised when the signature registry is missing or malformed."""


@dataclass(frozen=True, slots=True)
class MarkerRule:
    """Substring markers mapped to a label (tool class, framework, operation type)."""

    label: str
    markers: tuple[str, ...]
    score: int = 0

    def matches(self, text: str) -> bool:
        return any(marker in text for marker in self.markers)


@dataclass(frozen=True, slots=True)
class LanguageRule:
    language: str
    basename_markers: tuple[str, ...] = ()
    path_markers: tuple[str, ...] = ()
    dependency_manager: str = ""
    managed_memory: bool = False
    unsafe_code: bool = False
    runtime_probe: tuple[str, ...] = ()

    def matches_name(self, basename: str, path: str) -> bool:
        return any(marker in basename for marker in self.basename_markers) or any(
            marker in path for marker in self.path_markers
        )


@dataclass(frozen=True, slots=True)
class ManifestRule:
    file: str
    language: str
    dependency_manager: str


@dataclass(frozen=True, slots=True)
class NetworkToolRule:
    markers: tuple[str, ...]
    connections: int
    http_requests: int
    summary: str
    package_downloads: bool = False


@dataclass(frozen=True, slots=True)
class ProfileCondition:
    """Evidence an adjustment requires; any one populated marker list matching is enough.

    ``basename`` and ``path`` are substring checks on the target name and resolved path,
    ``manifest`` names files next to the target, and ``strings`` markers are matched
    case-insensitively against the ``strings`` helper output.
    """

    basename: tuple[str, ...] = ()
    path: tuple[str, ...] = ()
    manifest: tuple[str, ...] = ()
    strings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LanguageAdjustment:
    when: ProfileCondition
    info: str = ""
    risks: tuple[tuple[str, int], ...] = ()
    score: int | None = None
    score_delta: int = 0
    unsafe_code: bool = False


@dataclass(frozen=True, slots=True)
class LanguageSecurityProfile:
    language: str
    info: str = ""
    risks: tuple[tuple[str, int], ...] = ()
    score: int | None = None
    adjustments: tuple[LanguageAdjustment, ...] = ()


@dataclass(frozen=True, slots=True)
class VulnerabilityProbe:
    argument: str
    function: str
    risk: str
    details: str


@dataclass(frozen=True, slots=True)
class SignatureRegistry:
    tool_classes: tuple[MarkerRule, ...]
    verbose_operations: tuple[MarkerRule, ...]
    dangerous_symbols: tuple[str, ...]
    dangerous_basename_patterns: tuple[str, ...]
    vulnerable_test_markers: tuple[str, ...]
    symbol_table_markers: tuple[str, ...]
    vulnerability_probes: tuple[VulnerabilityProbe, ...]
    languages_by_name: tuple[LanguageRule, ...]
    languages_by_shebang: tuple[LanguageRule, ...]
    languages_by_strings: tuple[LanguageRule, ...]
    native_language: LanguageRule
    native_file_markers: tuple[str, ...]
    manifests: tuple[ManifestRule, ...]
    language_profiles: Mapping[str, LanguageSecurityProfile]
    frameworks_by_basename: tuple[MarkerRule, ...]
    frameworks_by_manifest: Mapping[str, tuple[tuple[str, str], ...]]
    shell_script_frameworks: tuple[tuple[str, str], ...]
    network_tools: tuple[NetworkToolRule, ...]
    upload_flags: tuple[str, ...]
    repositories: tuple[MarkerRule, ...]
    dangerous_filename_patterns: tuple[str, ...]
    suspicious_filename_patterns: tuple[str, ...]
    install_script_markers: tuple[str, ...]
    removal_script_markers: tuple[str, ...]
    suspicious_strings: re.Pattern[str]
    network_strings: re.Pattern[str]
    threat_families: tuple[tuple[str, re.Pattern[str]], ...]


@lru_cache(maxsize=1)
def default_signatures() -> SignatureRegistry:
    """Return the packaged registry (parsed once)."""

    text = resources.files(_PACKAGE).joinpath(_RESOURCE).read_text(encoding="utf-8")
    return parse_signatures(text, source=f"{_PACKAGE}/{_RESOURCE}")


def load_signatures(path: str | Path) -> SignatureRegistry:
    registry_path = Path(path)
    try:
        text = registry_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SignatureRegistryError(f"unable to read signature registry {registry_path}: {exc}") from exc
    return parse_signatures(text, source=registry_path.as_posix())


def parse_signatures(text: str, *, source: str = "<string>") -> SignatureRegistry:
    try:
        payload = cast("object", yaml.safe_load(text))
    except yaml.YAMLError as exc:
        raise SignatureRegistryError(f"{source}: invalid YAML ({exc})") from exc
    root = _mapping(payload, source)

    security = _mapping(root.get("security"), f"{source}.security")
    languages = _mapping(root.get("languages"), f"{source}.languages")
    frameworks = _mapping(root.get("frameworks"), f"{source}.frameworks")
    network = _mapping(root.get("network"), f"{source}.network")
    safe = _mapping(root.get("safe_analysis"), f"{source}.safe_analysis")
    native = _mapping(languages.get("native"), f"{source}.languages.native")

    return SignatureRegistry(
        tool_classes=tuple(
            _marker_rule(item, "class", f"{source}.tool_classes[{index}]")
            for index, item in enumerate(_sequence(root.get("tool_classes"), f"{source}.tool_classes"))
        ),
        verbose_operations=tuple(
            _marker_rule(item, "type", f"{source}.verbose_operations[{index}]")
            for index, item in enumerate(
                _sequence(root.get("verbose_operations"), f"{source}.verbose_operations")
            )
        ),
        dangerous_symbols=_strings(security.get("dangerous_symbols"), f"{source}.security.dangerous_symbols"),
        dangerous_basename_patterns=_strings(
            security.get("dangerous_basename_patterns"),
            f"{source}.security.dangerous_basename_patterns",
        ),
        vulnerable_test_markers=_strings(
            security.get("vulnerable_test_markers"), f"{source}.security.vulnerable_test_markers"
        ),
        symbol_table_markers=_strings(
            security.get("symbol_table_markers"), f"{source}.security.symbol_table_markers"
        ),
        vulnerability_probes=tuple(
            _vulnerability_probe(item, f"{source}.security.vulnerability_probes[{index}]")
            for index, item in enumerate(
                _sequence(security.get("vulnerability_probes"), f"{source}.security.vulnerability_probes")
            )
        ),
        languages_by_name=_language_rules(languages.get("by_name"), f"{source}.languages.by_name"),
        languages_by_shebang=_language_rules(
            languages.get("by_shebang"), f"{source}.languages.by_shebang"
        ),
        languages_by_strings=_language_rules(
            languages.get("by_strings"), f"{source}.languages.by_strings"
        ),
        native_language=_language_rule(native, f"{source}.languages.native"),
        native_file_markers=_strings(native.get("file_markers"), f"{source}.languages.native.file_markers"),
        manifests=tuple(
            _manifest_rule(item, f"{source}.languages.manifests[{index}]")
            for index, item in enumerate(
                _sequence(languages.get("manifests"), f"{source}.languages.manifests")
            )
        ),
        language_profiles=_language_profiles(languages.get("profiles", []), f"{source}.languages.profiles"),
        frameworks_by_basename=tuple(
            _marker_rule(item, "framework", f"{source}.frameworks.by_basename[{index}]")
            for index, item in enumerate(
                _sequence(frameworks.get("by_basename"), f"{source}.frameworks.by_basename")
            )
        ),
        frameworks_by_manifest={
            str(name): _pairs(table, f"{source}.frameworks.by_manifest.{name}")
            for name, table in _mapping(
                frameworks.get("by_manifest"), f"{source}.frameworks.by_manifest"
            ).items()
        },
        shell_script_frameworks=_pairs(
            frameworks.get("shell_script"), f"{source}.frameworks.shell_script"
        ),
        network_tools=tuple(
            _network_tool(item, f"{source}.network.tools[{index}]")
            for index, item in enumerate(_sequence(network.get("tools"), f"{source}.network.tools"))
        ),
        upload_flags=_strings(network.get("upload_flags"), f"{source}.network.upload_flags"),
        repositories=tuple(
            _repository_rule(item, f"{source}.network.repositories[{index}]")
            for index, item in enumerate(
                _sequence(network.get("repositories"), f"{source}.network.repositories")
            )
        ),
        dangerous_filename_patterns=_strings(
            safe.get("dangerous_filename"), f"{source}.safe_analysis.dangerous_filename"
        ),
        suspicious_filename_patterns=_strings(
            safe.get("suspicious_filename"), f"{source}.safe_analysis.suspicious_filename"
        ),
        install_script_markers=_strings(
            safe.get("install_scripts"), f"{source}.safe_analysis.install_scripts"
        ),
        removal_script_markers=_strings(
            safe.get("removal_scripts"), f"{source}.safe_analysis.removal_scripts"
        ),
        suspicious_strings=_regex(
            safe.get("suspicious_strings"), f"{source}.safe_analysis.suspicious_strings"
        ),
        network_strings=_regex(safe.get("network_strings"), f"{source}.safe_analysis.network_strings"),
        threat_families=tuple(
            (str(name), _regex(pattern, f"{source}.safe_analysis.threat_families.{name}"))
            for name, pattern in _mapping(
                safe.get("threat_families"), f"{source}.safe_analysis.threat_families"
            ).items()
        ),
    )


def _marker_rule(value: object, label_key: str, location: str) -> MarkerRule:
    entry = _mapping(value, location)
    score = entry.get("score", 0)
    if isinstance(score, bool) or not isinstance(score, int):
        raise SignatureRegistryError(f"{location}.score must be an integer")
    return MarkerRule(
        label=_text(entry.get(label_key), f"{location}.{label_key}"),
        markers=_strings(entry.get("markers"), f"{location}.markers"),
        score=score,
    )


def _manifest_rule(value: object, location: str) -> ManifestRule:
    entry = _mapping(value, location)
    return ManifestRule(
        file=_text(entry.get("file"), f"{location}.file"),
        language=_text(entry.get("language"), f"{location}.language"),
        dependency_manager=_text(entry.get("dependency_manager"), f"{location}.dependency_manager"),
    )


def _repository_rule(value: object, location: str) -> MarkerRule:
    entry = _mapping(value, location)
    return MarkerRule(
        label=_text(entry.get("name"), f"{location}.name"),
        markers=_strings(entry.get("hosts"), f"{location}.hosts"),
    )


def _language_rules(value: object, location: str) -> tuple[LanguageRule, ...]:
    return tuple(
        _language_rule(_mapping(item, f"{location}[{index}]"), f"{location}[{index}]")
        for index, item in enumerate(_sequence(value, location))
    )


def _language_rule(entry: Mapping[str, object], location: str) -> LanguageRule:
    return LanguageRule(
        language=_text(entry.get("language"), f"{location}.language"),
        basename_markers=_strings(
            entry.get("basename", entry.get("markers", [])), f"{location}.basename"
        ),
        path_markers=_strings(entry.get("path", []), f"{location}.path"),
        dependency_manager=_text(entry.get("dependency_manager", ""), f"{location}.dependency_manager", allow_empty=True),
        managed_memory=_flag(entry.get("managed_memory", False), f"{location}.managed_memory"),
        unsafe_code=_flag(entry.get("unsafe_code", False), f"{location}.unsafe_code"),
        runtime_probe=_strings(entry.get("runtime_probe", []), f"{location}.runtime_probe"),
    )


def _network_tool(value: object, location: str) -> NetworkToolRule:
    entry = _mapping(value, location)
    connections = entry.get("connections", 0)
    http_requests = entry.get("http_requests", 0)
    if not isinstance(connections, int) or not isinstance(http_requests, int):
        raise SignatureRegistryError(f"{location}: connections and http_requests must be integers")
    return NetworkToolRule(
        markers=_strings(entry.get("markers"), f"{location}.markers"),
        connections=connections,
        http_requests=http_requests,
        summary=_text(entry.get("summary"), f"{location}.summary"),
        package_downloads=_flag(entry.get("package_downloads", False), f"{location}.package_downloads"),
    )


def _vulnerability_probe(value: object, location: str) -> VulnerabilityProbe:
    entry = _mapping(value, location)
    return VulnerabilityProbe(
        argument=_text(entry.get("argument"), f"{location}.argument"),
        function=_text(entry.get("function"), f"{location}.function"),
        risk=_text(entry.get("risk"), f"{location}.risk"),
        details=_text(entry.get("details"), f"{location}.details"),
    )


def _language_profiles(value: object, location: str) -> dict[str, LanguageSecurityProfile]:
    profiles: dict[str, LanguageSecurityProfile] = {}
    for index, item in enumerate(_sequence(value, location)):
        entry = _mapping(item, f"{location}[{index}]")
        profile = LanguageSecurityProfile(
            language=_text(entry.get("language"), f"{location}[{index}].language"),
            info=_text(entry.get("info", ""), f"{location}[{index}].info", allow_empty=True),
            risks=_risks(entry.get("risks", {}), f"{location}[{index}].risks"),
            score=_optional_int(entry.get("score"), f"{location}[{index}].score"),
            adjustments=tuple(
                _language_adjustment(adjustment, f"{location}[{index}].adjustments[{position}]")
                for position, adjustment in enumerate(
                    _sequence(entry.get("adjustments", []), f"{location}[{index}].adjustments")
                )
            ),
        )
        if profile.language in profiles:
            raise SignatureRegistryError(f"{location}[{index}]: duplicate profile for {profile.language}")
        profiles[profile.language] = profile
    return profiles


def _language_adjustment(value: object, location: str) -> LanguageAdjustment:
    entry = _mapping(value, location)
    when = _mapping(entry.get("when"), f"{location}.when")
    unknown = sorted(str(key) for key in when if key not in _CONDITION_KEYS)
    if unknown or not when:
        raise SignatureRegistryError(
            f"{location}.when must use one or more of {', '.join(_CONDITION_KEYS)}"
        )
    score_delta = _optional_int(entry.get("score_delta"), f"{location}.score_delta")
    return LanguageAdjustment(
        when=ProfileCondition(
            **{key: _strings(when[key], f"{location}.when.{key}") for key in _CONDITION_KEYS if key in when}
        ),
        info=_text(entry.get("info", ""), f"{location}.info", allow_empty=True),
        risks=_risks(entry.get("risks", {}), f"{location}.risks"),
        score=_optional_int(entry.get("score"), f"{location}.score"),
        score_delta=score_delta or 0,
        unsafe_code=_flag(entry.get("unsafe_code", False), f"{location}.unsafe_code"),
    )


def _risks(value: object, location: str) -> tuple[tuple[str, int], ...]:
    table = _mapping(value, location)
    risks: list[tuple[str, int]] = []
    for key, level in table.items():
        field_name = RISK_FIELDS.get(str(key))
        if field_name is None:
            raise SignatureRegistryError(f"{location}.{key} is not a known risk")
        amount = _optional_int(level, f"{location}.{key}")
        if amount is None:
            raise SignatureRegistryError(f"{location}.{key} must be an integer")
        risks.append((field_name, amount))
    return tuple(risks)


def _optional_int(value: object, location: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise SignatureRegistryError(f"{location} must be an integer")
    return value


def _pairs(value: object, location: str) -> tuple[tuple[str, str], ...]:
    table = _mapping(value, location)
    return tuple((str(marker), _text(label, f"{location}.{marker}")) for marker, label in table.items())


def _mapping(value: object, location: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise SignatureRegistryError(f"{location} must be a mapping")
    return cast("Mapping[str, object]", value)


def _sequence(value: object, location: str) -> Sequence[object]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise SignatureRegistryError(f"{location} must be a list")
    return value


def _strings(value: object, location: str) -> tuple[str, ...]:
    items = _sequence(value, location)
    result: list[str] = []
    for index, item in enumerate(items):
        if not isinstance(item, str) or not item:
            raise SignatureRegistryError(f"{location}[{index}] must be a non-empty string")
        result.append(item)
    return tuple(result)


def _text(value: object, location: str, *, allow_empty: bool = False) -> str:
    if not isinstance(value, str) or (not value and not allow_empty):
        raise SignatureRegistryError(f"{location} must be a non-empty string")
    return value


def _flag(value: object, location: str) -> bool:
    if not isinstance(value, bool):
        raise SignatureRegistryError(f"{location} must be a boolean")
    return value


def _regex(value: object, location: str) -> re.Pattern[str]:
    pattern = _text(value, location)
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise SignatureRegistryError(f"{location}: invalid pattern ({exc})") from exc


__all__ = [
    "RISK_FIELDS",
    "LanguageAdjustment",
    "LanguageRule",
    "LanguageSecurityProfile",
    "ManifestRule",
    "ProfileCondition",
    "MarkerRule",
    "NetworkToolRule",
    "SignatureRegistry",
    "SignatureRegistryError",
    "VulnerabilityProbe",
    "default_signatures",
    "load_signatures",
    "parse_signatures",
]
