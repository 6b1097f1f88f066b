"""Language detection for repository files by name and content."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Dict

_LANGUAGE_BY_FILENAME: Dict[str, str] = {
    "dockerfile": "Dockerfile",
    "makefile": "Makefile",
    "gnumakefile": "Makefile",
    "cmakelists.txt": "CMake",
    "rakefile": "Ruby",
    "gemfile": "Ruby",
    "jenkinsfile": "Groovy",
}

_LANGUAGE_BY_SUFFIX: Dict[str, str] = {
    ".py": "Python",
    ".pyi": "Python",
    ".pyx": "Cython",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".java": "Java",
    ".kt": "Kotlin",
    ".kts": "Kotlin",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cc": "C++",
    ".hh": "C++",
    ".cxx": "C++",
    ".swift": "Swift",
    ".m": "Objective-C",
    ".mm": "Objective-C++",
    ".scala": "Scala",
    ".groovy": "Groovy",
    ".r": "R",
    ".jl": "Julia",
    ".lua": "Lua",
    ".pl": "Perl",
    ".pm": "Perl",
    ".hs": "Haskell",
    ".erl": "Erlang",
    ".ex": "Elixir",
    ".exs": "Elixir",
    ".clj": "Clojure",
    ".sh": "Shell",
    ".bash": "Shell",
    ".zsh": "Shell",
    ".ps1": "PowerShell",
    ".bat": "Batchfile",
    ".cmd": "Batchfile",
    ".sql": "SQL",
    ".html": "HTML",
    ".htm": "HTML",
    ".css": "CSS",
    ".scss": "SCSS",
    ".less": "Less",
    ".xml": "XML",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".json": "JSON",
    ".toml": "TOML",
    ".ini": "INI",
    ".md": "Markdown",
    ".rst": "reStructuredText",
    ".tf": "HCL",
    ".proto": "Protocol Buffer",
    ".vim": "Vim script",
}

_LANGUAGE_BY_INTERPRETER: Dict[str, str] = {
    "python": "Python",
    "python2": "Python",
    "python3": "Python",
    "sh": "Shell",
    "bash": "Shell",
    "zsh": "Shell",
    "node": "JavaScript",
    "ruby": "Ruby",
    "perl": "Perl",
    "php": "PHP",
    "lua": "Lua",
}

_BINARY_SNIFF_BYTES = 8000


def detect_language(filename: str, content: bytes) -> str:
    """Return the language of ``filename`` or an empty string if undetermined.

    File names are checked first, then extensions, then the shebang line.
    Binary content is never assigned a language.
    """
    if is_binary(content):
        return ""

    name = PurePosixPath(filename.replace("\\", "/")).name
    lowered = name.lower()
    if lowered in _LANGUAGE_BY_FILENAME:
        return _LANGUAGE_BY_FILENAME[lowered]
    if lowered.startswith("dockerfile."):
        return "Dockerfile"

    suffix = PurePosixPath(lowered).suffix
    if suffix in _LANGUAGE_BY_SUFFIX:
        return _LANGUAGE_BY_SUFFIX[suffix]

    return _language_from_shebang(content)


def is_binary(content: bytes) -> bool:
    return b"\x00" in content[:_BINARY_SNIFF_BYTES]


def _language_from_shebang(content: bytes) -> str:
    if not content.startswith(b"#!"):
        return ""
    first_line = content.split(b"\n", 1)[0][2:].decode("utf-8", errors="replace").strip()
    parts = first_line.split()
    if not parts:
        return ""
    interpreter = parts[0].rsplit("/", 1)[-1]
    if interpreter == "env":
        args = [part for part in parts[1:] if not part.startswith("-")]
        if not args:
            return ""
        interpreter = args[0]
    return _LANGUAGE_BY_INTERPRETER.get(interpreter, "")


__all__ = ["detect_language", "is_binary"]
