"""Software license identification from license file text.

Classification is a deliberately cheap heuristic: the text is normalized and
then scanned for differentiating phrases, top to bottom, and the first rule
that matches decides the family. Comparing the whole body against reference
texts with an edit-distance algorithm would be more accurate, but the
GPL-family texts are large enough to make that expensive, and it is still not
fully deterministic about which license is in play.

The rule order matters. Several licenses quote or mention others (the MPL 2.0
text references the GPL, the LGPL texts contain "gnu general public license"),
so the more specific families are tested before the generic ones.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import FrozenSet, List, Optional, Sequence, Tuple

LICENSE_MIT = "MIT"
LICENSE_NEW_BSD = "BSD-3-Clause"
LICENSE_FREE_BSD = "BSD-2-Clause-FreeBSD"
LICENSE_APACHE_20 = "Apache-2.0"
LICENSE_MPL_20 = "MPL-2.0"
LICENSE_GPL_20 = "GPL-2.0-only"
LICENSE_GPL_30 = "GPL-3.0-only"
LICENSE_LGPL_21 = "LGPL-2.1-only"
LICENSE_LGPL_30 = "LGPL-3.0-only"
LICENSE_AGPL_30 = "AGPL-3.0-only"
LICENSE_CDDL_10 = "CDDL-1.0"
LICENSE_EPL_10 = "EPL-1.0"
LICENSE_UNLICENSE = "Unlicense"

_FILE_STEMS = ("copying", "copyleft", "copyright", "license", "unlicense")
_FILE_EXTENSIONS = ("", ".md", ".rst", ".txt")

_LINE_BREAKS = re.compile(r"[\r\n\t]+")
_SPACES = re.compile(r"\s{2,}")


class LicenseError(Exception):
    """Base class for license lookup failures."""


class NoLicenseFileError(LicenseError):
    """Raised when a directory holds no recognizable license file."""


class MultipleLicensesError(LicenseError):
    """Raised when a directory holds more than one license file."""


class UnrecognizedLicenseError(LicenseError):
    """Raised when license text matches no family in the catalog."""


@dataclass(frozen=True)
class LicenseRule:
    """Assigns ``family`` when any of ``phrases`` occurs in normalized text."""

    family: str
    phrases: Tuple[str, ...]

    def match(self, text: str) -> Optional[str]:
        if any(phrase in text for phrase in self.phrases):
            return self.family
        return None

    def families(self) -> Tuple[str, ...]:
        return (self.family,)


@dataclass(frozen=True)
class BSDRule(LicenseRule):
    """Shared BSD preamble, split on the presence of the endorsement clause."""

    clause: str = "neither the name of"
    without_clause: str = LICENSE_FREE_BSD

    def match(self, text: str) -> Optional[str]:
        if not any(phrase in text for phrase in self.phrases):
            return None
        if self.clause in text:
            return self.family
        return self.without_clause

    def families(self) -> Tuple[str, ...]:
        return (self.family, self.without_clause)


@dataclass(frozen=True)
class LicenseCatalog:
    """Immutable lookup tables for license file names and license families."""

    rules: Tuple[LicenseRule, ...]
    families: FrozenSet[str]
    file_names: FrozenSet[str]

    @classmethod
    def build(
        cls,
        rules: Sequence[LicenseRule],
        stems: Sequence[str] = _FILE_STEMS,
        extensions: Sequence[str] = _FILE_EXTENSIONS,
    ) -> "LicenseCatalog":
        families = frozenset(family for rule in rules for family in rule.families())
        names = frozenset(stem + ext for stem in stems for ext in extensions)
        return cls(rules=tuple(rules), families=families, file_names=names)


DEFAULT_CATALOG = LicenseCatalog.build(
    (
        LicenseRule(
            LICENSE_MIT,
            ("permission is hereby granted free of charge to any person obtaining a copy of this software",),
        ),
        LicenseRule(
            LICENSE_APACHE_20,
            ("apache license version 2.0 ", "http://www.apache.org/licenses/license-2.0"),
        ),
        # MPL 2.0 must be scanned before the GPL family.
        LicenseRule(LICENSE_MPL_20, ("mozilla public license version 2.0 ",)),
        LicenseRule(LICENSE_LGPL_21, ("gnu lesser general public license version 2.1 ",)),
        LicenseRule(LICENSE_LGPL_30, ("gnu lesser general public license version 3 ",)),
        LicenseRule(LICENSE_AGPL_30, ("gnu affero general public license version 3 ",)),
        LicenseRule(LICENSE_GPL_20, ("gnu general public license version 2 ",)),
        LicenseRule(LICENSE_GPL_30, ("gnu general public license version 3 ",)),
        BSDRule(LICENSE_NEW_BSD, ("redistribution and use in source and binary forms",)),
        LicenseRule(
            LICENSE_CDDL_10,
            ("common development and distribution license (cddl) version 1.0 ",),
        ),
        LicenseRule(LICENSE_EPL_10, ("eclipse public license - v 1.0 ",)),
        LicenseRule(
            LICENSE_UNLICENSE,
            ("this is free and unencumbered software released into the public domain",),
        ),
    )
)


def normalize(text: str) -> str:
    """Lower-case ``text``, turn line breaks and tabs into spaces, drop commas
    and collapse repeated whitespace."""
    text = text.lower()
    text = _LINE_BREAKS.sub(" ", text)
    text = text.replace(",", "")
    return _SPACES.sub(" ", text)


def classify(text: str, catalog: LicenseCatalog = DEFAULT_CATALOG) -> Tuple[Optional[str], bool]:
    """Return ``(family, True)`` for recognized text, ``(None, False)`` otherwise."""
    comp = normalize(text)
    for rule in catalog.rules:
        family = rule.match(comp)
        if family is not None:
            return family, True
    return None, False


def guess_type(text: str, catalog: LicenseCatalog = DEFAULT_CATALOG) -> str:
    """Return the license family of ``text`` or raise UnrecognizedLicenseError."""
    family, ok = classify(text, catalog)
    if not ok or family is None:
        raise UnrecognizedLicenseError("could not guess license type")
    return family


def recognized(family: Optional[str], catalog: LicenseCatalog = DEFAULT_CATALOG) -> bool:
    return family in catalog.families


def is_license_file(path: str, catalog: LicenseCatalog = DEFAULT_CATALOG) -> bool:
    """Return True when the base name of ``path`` is a well-known license file name."""
    name = PurePosixPath(path.replace("\\", "/")).name
    return name.lower() in catalog.file_names


def search_dir(directory: Path, catalog: LicenseCatalog = DEFAULT_CATALOG) -> List[str]:
    """Return the names of regular license files directly inside ``directory``."""
    found: List[str] = []
    for entry in sorted(directory.iterdir(), key=lambda item: item.name):
        if entry.is_symlink() or not entry.is_file():
            continue
        if entry.name.lower() in catalog.file_names:
            found.append(entry.name)
    return found


def license_from_file(path: Path, catalog: LicenseCatalog = DEFAULT_CATALOG) -> str:
    """Read ``path`` and guess its license family."""
    text = path.read_text(encoding="utf-8", errors="replace")
    return guess_type(text, catalog)


def license_from_dir(directory: Path, catalog: LicenseCatalog = DEFAULT_CATALOG) -> str:
    """Guess the license of ``directory`` from its single license file."""
    files = search_dir(directory, catalog)
    if not files:
        raise NoLicenseFileError(f"unable to find any license file in {directory}")
    if len(files) > 1:
        raise MultipleLicensesError(
            f"multiple license files found in {directory}: {', '.join(files)}"
        )
    return license_from_file(directory / files[0], catalog)


__all__ = [
    "BSDRule",
    "DEFAULT_CATALOG",
    "LicenseCatalog",
    "LicenseError",
    "LicenseRule",
    "MultipleLicensesError",
    "NoLicenseFileError",
    "UnrecognizedLicenseError",
    "classify",
    "guess_type",
    "is_license_file",
    "license_from_dir",
    "license_from_file",
    "normalize",
    "recognized",
    "search_dir",
]
