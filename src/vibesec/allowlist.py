"""
vibesec - Allowlist Store

User-maintained trust patterns, one regular expression per line in a plain
text file. Blank lines and lines starting with # are ignored. A pattern that
does not compile is skipped on load; it never disables the rest of the list.

The allowlist only ever suppresses bypassable tiers (L2/L3). L1 rules are
evaluated before the allowlist is consulted at all.

Appends write a provenance comment (`# added <timestamp>`) above the pattern.
Concurrent writers are not coordinated; last writer wins.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from vibesec.log import debug

_ADDED_COMMENT = re.compile(r"^#\s*added\s+(\S+)")
_URL_HOST = re.compile(r"https?://([^/\s\"']+)")
SUGGESTION_PREFIX_CHARS = 60


class InvalidPatternError(ValueError):
    """Raised by append() for a pattern that is not a valid regular expression."""


@dataclass(frozen=True)
class AllowlistEntry:
    pattern: str
    regex: re.Pattern
    added_at: str | None = None

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


def parse_lines(lines) -> list:
    """Turn allowlist file lines into entries, skipping comments and bad patterns."""
    entries = []
    added_at = None
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#"):
            m = _ADDED_COMMENT.match(line)
            added_at = m.group(1) if m else added_at
            continue
        try:
            entries.append(AllowlistEntry(line, re.compile(line), added_at))
        except re.error as e:
            debug(f"Skipping invalid allowlist pattern {line!r}: {e}")
        added_at = None
    return entries


class AllowlistStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._entries = None

    def load(self) -> list:
        """Read the allowlist file. A missing or unreadable file is an empty list."""
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            lines = []
        except (OSError, UnicodeDecodeError) as e:
            debug(f"Allowlist unreadable: {e}")
            lines = []
        self._entries = parse_lines(lines)
        return self._entries

    @property
    def entries(self) -> list:
        if self._entries is None:
            self.load()
        return self._entries

    def patterns(self) -> list:
        return [entry.pattern for entry in self.entries]

    def matches(self, text: str) -> bool:
        return any(entry.matches(text) for entry in self.entries)

    def match(self, text: str) -> AllowlistEntry | None:
        for entry in self.entries:
            if entry.matches(text):
                return entry
        return None

    def append(self, pattern: str) -> bool:
        """Add a pattern. Returns False if the exact text is already present.

        Raises InvalidPatternError if the pattern does not compile.
        """
        pattern = pattern.strip()
        if not pattern or pattern.startswith("#"):
            raise InvalidPatternError("pattern must be a non-empty regular expression")
        try:
            re.compile(pattern)
        except re.error as e:
            raise InvalidPatternError(f"invalid regex: {e}") from e

        # Compare against the raw file, including entries that failed to compile
        existing = set()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                existing = {line.strip() for line in f}
        except FileNotFoundError:
            pass
        if pattern in existing:
            return False

        added_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        needs_newline = False
        if self.path.exists() and self.path.stat().st_size > 0:
            with open(self.path, 'rb') as f:
                f.seek(-1, 2)
                needs_newline = f.read(1) != b"\n"
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(("\n" if needs_newline else "") + f"# added {added_at}\n{pattern}\n")
        self._entries = None
        return True

    def clear(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("", encoding='utf-8')
        self._entries = None


def suggest_pattern(text: str) -> str:
    """Derive an allowlist candidate for a blocked action.

    The first URL host wins (`curl.*evil\\.example\\.com`); without one, the
    escaped first 60 characters of the text are used.
    """
    m = _URL_HOST.search(text)
    if m:
        return "curl.*" + re.escape(m.group(1))
    return re.escape(text[:SUGGESTION_PREFIX_CHARS])
