"""Blank, code and comment line classification for files on disk."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

from ..logging import get_logger
from ..models import LineCounts
from .language import detect_language


@dataclass(frozen=True)
class CommentSyntax:
    """Single-line comment markers and block comment delimiters of a language."""

    line: Tuple[str, ...] = ()
    blocks: Tuple[Tuple[str, str], ...] = ()


_C_STYLE = CommentSyntax(line=("//",), blocks=(("/*", "*/"),))
_HASH_STYLE = CommentSyntax(line=("#",))

_SYNTAX_BY_LANGUAGE: Dict[str, CommentSyntax] = {
    **{
        lang: _C_STYLE
        for lang in (
            "C",
            "C++",
            "C#",
            "Go",
            "Java",
            "JavaScript",
            "TypeScript",
            "Kotlin",
            "Rust",
            "Scala",
            "Swift",
            "Objective-C",
            "Objective-C++",
            "Groovy",
            "PHP",
            "Protocol Buffer",
            "Less",
            "SCSS",
        )
    },
    **{
        lang: _HASH_STYLE
        for lang in (
            "Shell",
            "Ruby",
            "Perl",
            "R",
            "Julia",
            "Elixir",
            "YAML",
            "TOML",
            "Makefile",
            "Dockerfile",
            "CMake",
            "PowerShell",
        )
    },
    "Python": CommentSyntax(line=("#",)),
    "Cython": CommentSyntax(line=("#",)),
    "HCL": CommentSyntax(line=("#", "//"), blocks=(("/*", "*/"),)),
    "CSS": CommentSyntax(blocks=(("/*", "*/"),)),
    "SQL": CommentSyntax(line=("--",), blocks=(("/*", "*/"),)),
    "Lua": CommentSyntax(line=("--",), blocks=(("--[[", "]]"),)),
    "Haskell": CommentSyntax(line=("--",), blocks=(("{-", "-}"),)),
    "Erlang": CommentSyntax(line=("%",)),
    "Clojure": CommentSyntax(line=(";",)),
    "INI": CommentSyntax(line=(";", "#")),
    "Batchfile": CommentSyntax(line=("rem ", "REM ", "::")),
    "Vim script": CommentSyntax(line=('"',)),
    "HTML": CommentSyntax(blocks=(("<!--", "-->"),)),
    "XML": CommentSyntax(blocks=(("<!--", "-->"),)),
    "Markdown": CommentSyntax(blocks=(("<!--", "-->"),)),
}

_PLAIN = CommentSyntax()


class LineCounter:
    """Counts blank, code and comment lines per language for a set of files."""

    def __init__(self, detector: Callable[[str, bytes], str] | None = None) -> None:
        self._detect = detector or detect_language
        self.logger = get_logger("lines")

    def analyze(self, paths: Iterable[Path]) -> Dict[str, LineCounts]:
        """Return per-language line counts for ``paths``; unknown files are skipped."""
        result: Dict[str, LineCounts] = {}
        analyzed = 0
        for path in paths:
            content = path.read_bytes()
            language = self._detect(path.name, content)
            if not language:
                continue
            counts = result.setdefault(language, LineCounts())
            blank, code, comments = count_lines(
                content.decode("utf-8", errors="replace"),
                _SYNTAX_BY_LANGUAGE.get(language, _PLAIN),
            )
            counts.blank += blank
            counts.code += code
            counts.comments += comments
            analyzed += 1
        self.logger.debug("Counted lines of %d files in %d languages", analyzed, len(result))
        return result


def count_lines(text: str, syntax: CommentSyntax) -> Tuple[int, int, int]:
    """Classify each line of ``text`` and return ``(blank, code, comments)``."""
    blank = code = comments = 0
    closing: Optional[str] = None

    for raw in text.splitlines():
        line = raw.strip()
        if closing is not None:
            comments += 1
            if closing in line:
                closing = None
            continue
        if not line:
            blank += 1
            continue
        block = _opening_block(line, syntax)
        if block is not None:
            start, end = block
            comments += 1
            if end not in line[len(start):]:
                closing = end
            continue
        if any(line.startswith(marker) for marker in syntax.line):
            comments += 1
            continue
        code += 1

    return blank, code, comments


def _opening_block(line: str, syntax: CommentSyntax) -> Optional[Tuple[str, str]]:
    for start, end in syntax.blocks:
        if line.startswith(start):
            return start, end
    return None


__all__ = ["CommentSyntax", "LineCounter", "count_lines"]
