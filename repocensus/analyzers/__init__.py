"""Per-file analyzers: language detection, line counting and license identification."""

from .language import detect_language
from .license import DEFAULT_CATALOG, LicenseCatalog, classify, is_license_file, normalize
from .lines import LineCounter

__all__ = [
    "DEFAULT_CATALOG",
    "LicenseCatalog",
    "LineCounter",
    "classify",
    "detect_language",
    "is_license_file",
    "normalize",
]
