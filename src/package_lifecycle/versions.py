"""
Semantic-version checks used by the package manager.

Engine ranges use the npm range grammar packages publish in their metadata
(``^1.2.0``, ``~1.2``, ``>=1.0.0 <2.0.0``, ``1.x || >=3``, ``1.0.0 - 2.0.0``).
Ranges are expanded into comparator sets and evaluated with ``semver``.
Invalid versions or ranges never raise out of this module; they simply make a
package non-upgradable or incompatible.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable
from typing import Any

from semver import Version

Comparator = tuple[Callable[[Any, Any], bool], Version]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "=": operator.eq,
}

_PARTIAL = re.compile(
    r"^(?P<op><=|>=|<|>|=|\^|~>?)?v?"
    r"(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)
_HYPHEN = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OP_SPACE = re.compile(r"(<=|>=|<|>|=|\^|~>?)\s+")
_WILDCARDS = {None, "x", "X", "*"}


def parse_version(version: Any) -> Version | None:
    """Parse a semantic version, tolerating a leading ``v`` or ``=``."""
    if not isinstance(version, str):
        return None
    text = version.strip().lstrip("=v")
    try:
        return Version.parse(text)
    except (TypeError, ValueError):
        return None


def is_valid(version: Any) -> bool:
    return parse_version(version) is not None


def normalize_version(version: str) -> str:
    """Drop any pre-release suffix: ``1.40.0-beta1`` becomes ``1.40.0``."""
    return version.split("-")[0]


def can_upgrade(installed_version: Any, available_version: Any) -> bool:
    """
    True iff both versions are valid and ``available_version`` is newer.

    Example:
        can_upgrade("1.2.0", "1.3.0")   # True
        can_upgrade("1.2.0", "1.2.0")   # False
        can_upgrade("1.2.0", "latest")  # False
    """
    installed = parse_version(installed_version)
    available = parse_version(available_version)
    if installed is None or available is None:
        return False
    return available > installed


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------


def _num(part: str | None) -> int | None:
    return None if part in _WILDCARDS else int(part)  # type: ignore[arg-type]


def _expand(token: str) -> list[Comparator]:
    """Expand one range token into comparators. Raises ValueError if invalid."""
    match = _PARTIAL.match(token)
    if match is None:
        raise ValueError(f"Invalid range token: {token!r}")

    op = match.group("op") or ""
    major = _num(match.group("major"))
    minor = _num(match.group("minor")) if major is not None else None
    patch = _num(match.group("patch")) if minor is not None else None
    pre = match.group("pre") if patch is not None else None

    if major is None:
        # "*" matches everything except with "<" / ">"
        if op in ("<", ">"):
            return [(operator.lt, Version(0, 0, 0))]
        return []

    low = Version(major, minor or 0, patch or 0, prerelease=pre)

    if op == "^":
        if major > 0 or minor is None:
            high = Version(major + 1, 0, 0)
        elif minor > 0 or patch is None:
            high = Version(0, minor + 1, 0)
        else:
            high = Version(0, 0, patch + 1)
        return [(operator.ge, low), (operator.lt, high)]

    if op.startswith("~"):
        high = Version(major + 1, 0, 0) if minor is None else Version(major, minor + 1, 0)
        return [(operator.ge, low), (operator.lt, high)]

    partial_high = (
        Version(major + 1, 0, 0)
        if minor is None
        else Version(major, minor + 1, 0)
        if patch is None
        else None
    )

    if op in ("", "="):
        if partial_high is None:
            return [(operator.eq, low)]
        return [(operator.ge, low), (operator.lt, partial_high)]
    if op == ">" and partial_high is not None:
        return [(operator.ge, partial_high)]
    if op == "<=" and partial_high is not None:
        return [(operator.lt, partial_high)]
    return [(_OPERATORS[op], low)]


def _parse_set(text: str) -> list[Comparator]:
    hyphen = _HYPHEN.match(text)
    if hyphen:
        # "A - B" is ">=A <=B"; a partial B becomes "<" its next release
        low = _expand(hyphen.group(1))
        high = _expand(hyphen.group(2))
        comparators = [(operator.ge, low[0][1])] if low else []
        if len(high) == 1:
            comparators.append((operator.le, high[0][1]))
        elif high:
            comparators.append(high[-1])
        return comparators
    comparators: list[Comparator] = []
    for token in _OP_SPACE.sub(r"\1", text).split():
        comparators.extend(_expand(token))
    return comparators


def parse_range(range_: str) -> list[list[Comparator]]:
    """Parse a range into OR-ed comparator sets. Raises ValueError if invalid."""
    if not isinstance(range_, str):
        raise ValueError(f"Invalid range: {range_!r}")
    return [_parse_set(part.strip()) for part in range_.split("||")]


def valid_range(range_: Any) -> bool:
    try:
        parse_range(range_)
    except ValueError:
        return False
    return True


def _set_allows(comparators: list[Comparator], version: Version) -> bool:
    if not all(test(version, bound) for test, bound in comparators):
        return False
    if version.prerelease is None:
        return True
    # Pre-releases only match a comparator set that names the same release
    # tuple with a pre-release of its own.
    return any(
        bound.prerelease is not None
        and (bound.major, bound.minor, bound.patch)
        == (version.major, version.minor, version.patch)
        for _, bound in comparators
    )


def satisfies(version: Any, range_: str) -> bool:
    """True if ``version`` falls in ``range_``; False for invalid input."""
    parsed = parse_version(version)
    if parsed is None:
        return False
    try:
        sets = parse_range(range_)
    except ValueError:
        return False
    return any(_set_allows(comparators, parsed) for comparators in sets)


def satisfies_version(version: str, metadata: dict[str, Any], engine_key: str = "host") -> bool:
    """
    Check a host version against a package's declared engine range.

    A package without an engine declaration is compatible with everything;
    a package with an unparseable range is compatible with nothing.
    """
    engines = metadata.get("engines") or {}
    engine = engines.get(engine_key) if isinstance(engines, dict) else None
    if engine is None:
        engine = "*"
    if not valid_range(engine):
        return False
    return satisfies(version, engine)
