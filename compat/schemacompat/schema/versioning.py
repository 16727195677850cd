"""
Baseline version resolution.

Given the version being built and the versions already published, select
the versions whose schemas the current build should be compared against.

Strategies:
    - LATEST_MINOR: greatest release in the same major.minor with a lower patch
    - LATEST_PATCH: greatest release in the same major.minor, any other patch
    - PREVIOUS_MAJOR: greatest release of major - 1
    - ALL: every known version lower than current, ascending

Invariants:
    - Resolution is a pure function of (current, known, strategy)
    - Unparsable strings never raise here; they are skipped
    - Prerelease versions are only candidates for ALL
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Union

from ..errors import VersionParseError

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"([0-9]+)\.([0-9]+)\.([0-9]+)(?:-([0-9A-Za-z.-]+))?")


@dataclass(frozen=True)
class Version:
    """A MAJOR.MINOR.PATCH(-TAG) version.

    Ordering compares major, minor and patch numerically; a prerelease sorts
    below the release with the same numbers, and prerelease tags compare
    lexicographically.
    """

    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> Version:
        """Parse a strict version string.

        Raises:
            VersionParseError: If value does not match MAJOR.MINOR.PATCH(-TAG)
        """
        match = _VERSION_RE.fullmatch(value.strip()) if isinstance(value, str) else None
        if match is None:
            raise VersionParseError(str(value))
        major, minor, patch, prerelease = match.groups()
        return cls(int(major), int(minor), int(patch), prerelease)

    @classmethod
    def try_parse(cls, value: str) -> Optional[Version]:
        try:
            return cls.parse(value)
        except VersionParseError:
            return None

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    def _sort_key(self) -> tuple:
        if self.prerelease is None:
            return (self.major, self.minor, self.patch, 1, "")
        return (self.major, self.minor, self.patch, 0, self.prerelease)

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __le__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._sort_key() <= other._sort_key()

    def __gt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._sort_key() > other._sort_key()

    def __ge__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._sort_key() >= other._sort_key()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


class Strategy(Enum):
    """Baseline selection strategy."""

    LATEST_MINOR = "latestMinor"
    LATEST_PATCH = "latestPatch"
    PREVIOUS_MAJOR = "previousMajor"
    ALL = "all"

    @classmethod
    def from_str(cls, value: str) -> Strategy:
        """Parse a strategy name.

        Accepts the camelCase value, the enum name, or a snake/kebab-case
        spelling (latestMinor, LATEST_MINOR, latest-minor).

        Raises:
            ValueError: If value is not a known strategy
        """
        normalized = value.strip().replace("_", "").replace("-", "").lower()
        for strategy in cls:
            if strategy.value.lower() == normalized:
                return strategy
        valid = [s.value for s in cls]
        raise ValueError(f"Invalid baseline strategy '{value}'. Valid strategies: {valid}")


VersionLike = Union[Version, str]


def _coerce(value: VersionLike) -> Optional[Version]:
    if isinstance(value, Version):
        return value
    parsed = Version.try_parse(value)
    if parsed is None:
        logger.debug(f"Skipping unparsable version {value!r}")
    return parsed


def resolve_baselines(
    current: VersionLike,
    known: Iterable[VersionLike],
    strategy: Strategy | str = Strategy.LATEST_MINOR,
) -> List[Version]:
    """Select baseline versions to compare the current build against.

    Args:
        current: Version being built
        known: Previously published versions (duplicates are ignored)
        strategy: Selection strategy

    Returns:
        Selected versions in ascending order; empty when current is
        unparsable or nothing qualifies

    Example:
        >>> resolve_baselines("2.1.3", ["2.1.0", "2.1.2", "2.0.5"], Strategy.LATEST_MINOR)
        [Version(major=2, minor=1, patch=2, prerelease=None)]
    """
    if isinstance(strategy, str):
        strategy = Strategy.from_str(strategy)

    current_version = _coerce(current)
    if current_version is None:
        return []

    candidates = sorted({v for v in (_coerce(k) for k in known) if v is not None})
    if strategy is Strategy.ALL:
        return [v for v in candidates if v < current_version]

    releases = [v for v in candidates if not v.is_prerelease]
    if strategy is Strategy.LATEST_MINOR:
        selected = [
            v for v in releases
            if v.major == current_version.major
            and v.minor == current_version.minor
            and v.patch < current_version.patch
        ]
    elif strategy is Strategy.LATEST_PATCH:
        selected = [
            v for v in releases
            if v.major == current_version.major
            and v.minor == current_version.minor
            and v.patch != current_version.patch
        ]
    else:
        if current_version.major == 0:
            return []
        selected = [v for v in releases if v.major == current_version.major - 1]

    return selected[-1:]
