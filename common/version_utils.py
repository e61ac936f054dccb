# common/version_utils.py
# -*- coding: utf-8 -*-
"""
Dotted-numeric version parsing and selection.

Versions scraped from a package index ("3.9", "3.10", "3.12") must be
compared component by component as integers; a plain string sort would put
"3.9" above "3.10".
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

_VERSION_RE = re.compile(r"^\d+(?:\.\d+)*$")


class NoCandidatesError(LookupError):
    """Raised when a version query yields nothing to choose from."""


@dataclass(frozen=True, order=True)
class VersionCandidate:
    """A version string together with its numeric ordinal."""

    ordinal: Tuple[int, ...]
    raw: str = field(compare=False)

    def __str__(self) -> str:
        return self.raw


def parse_version(raw: str) -> Optional[VersionCandidate]:
    """
    Parses '3.12' into VersionCandidate(ordinal=(3, 12), raw='3.12').

    Returns None for strings that are not purely dotted-numeric.
    """
    text = raw.strip()
    if not _VERSION_RE.match(text):
        return None
    return VersionCandidate(
        ordinal=tuple(int(part) for part in text.split(".")), raw=text
    )


def select_latest_version(raw_versions: Iterable[str]) -> VersionCandidate:
    """
    Returns the highest version among `raw_versions`.

    Unparseable entries are ignored. Equal ordinals are not expected from
    the package index; if they occur either may be returned.

    Raises:
        NoCandidatesError: Nothing parseable was supplied.
    """
    candidates = [
        candidate
        for candidate in (parse_version(raw) for raw in raw_versions)
        if candidate is not None
    ]
    if not candidates:
        raise NoCandidatesError("No version candidates found.")
    return max(candidates)


def versions_from_package_names(
    package_names: Iterable[str], prefix: str
) -> List[str]:
    """
    Strips `prefix` from package names, e.g. 'python3.12' -> '3.12'.

    Names that do not start with the prefix are skipped.
    """
    versions = []
    for name in package_names:
        if name.startswith(prefix):
            versions.append(name[len(prefix):])
    return versions


def extract_version(text: str) -> Optional[str]:
    """
    Finds the first dotted version number in tool output.

    'Docker version 27.1.1, build 6312585' -> '27.1.1'
    'v2.29.1' -> '2.29.1'
    """
    match = re.search(r"(\d+(?:\.\d+)+)", text or "")
    return match.group(1) if match else None
