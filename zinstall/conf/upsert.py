"""
zinstall.conf.upsert — Idempotent ``key=value`` edits of agent config files.

The file is parsed into typed lines instead of being rewritten with a
regex, so unrelated content survives byte-for-byte:

* ``KeyValueLine``     — active ``Key=value``
* ``CommentedKeyLine`` — ``# Key=value`` (any run of ``#`` and whitespace)
* ``OpaqueLine``       — everything else

``upsert`` rewrites *every* line that matches the key, commented or not,
into the canonical ``Key=value`` form and appends the line when no match
exists.  Applying the same upsert twice yields the same document.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
# optional run of '#' / whitespace, then KEY=VALUE
_LINE_RE = re.compile(r"^(?P<prefix>[#\s]*)(?P<key>[A-Za-z_][A-Za-z0-9_.]*)=(?P<value>.*)$")


# ---------------------------------------------------------------------------
# Line types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyValueLine:
    key: str
    value: str
    raw: str

    def matches(self, key: str) -> bool:
        return self.key == key

    @property
    def canonical(self) -> bool:
        return self.raw == f"{self.key}={self.value}"


@dataclass(frozen=True)
class CommentedKeyLine:
    key: str
    value: str
    raw: str

    def matches(self, key: str) -> bool:
        return self.key == key


@dataclass(frozen=True)
class OpaqueLine:
    raw: str

    def matches(self, key: str) -> bool:
        return False


Line = Union[KeyValueLine, CommentedKeyLine, OpaqueLine]


def parse_line(raw: str) -> Line:
    """Classify a single line (without its newline)."""
    m = _LINE_RE.match(raw)
    if m is None:
        return OpaqueLine(raw)
    key, value, prefix = m.group("key"), m.group("value"), m.group("prefix")
    if "#" in prefix:
        return CommentedKeyLine(key, value, raw)
    return KeyValueLine(key, value, raw)


def _validate_key(key: str) -> None:
    if not _KEY_RE.match(key):
        raise ValueError(f"Invalid config key: {key!r}")


def _validate_value(value: str) -> None:
    if "\n" in value or "\r" in value:
        raise ValueError("Config values must fit on one line")


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfigDocument:
    """An ordered, immutable sequence of config lines.

    Attributes
    ----------
    lines : tuple[Line, ...]
        Parsed lines, in file order.
    trailing_newline : bool
        Whether the source text ended with a newline.
    """

    lines: tuple[Line, ...] = ()
    trailing_newline: bool = True

    @classmethod
    def parse(cls, text: str) -> ConfigDocument:
        if not text:
            return cls((), True)
        trailing = text.endswith("\n")
        raw_lines = text.split("\n")
        if trailing:
            raw_lines.pop()
        return cls(tuple(parse_line(r) for r in raw_lines), trailing)

    @classmethod
    def from_lines(cls, raw_lines: Iterable[str]) -> ConfigDocument:
        return cls(tuple(parse_line(r) for r in raw_lines), True)

    def render(self) -> str:
        text = "\n".join(line.raw for line in self.lines)
        if self.lines and self.trailing_newline:
            text += "\n"
        return text

    def raw_lines(self) -> list[str]:
        return [line.raw for line in self.lines]

    def get(self, key: str) -> str | None:
        """Value of the last active line for *key*, or None."""
        value = None
        for line in self.lines:
            if isinstance(line, KeyValueLine) and line.key == key:
                value = line.value
        return value

    def evidence(self, keys: Iterable[str]) -> list[tuple[int, str]]:
        """1-based line numbers and text of active lines for *keys*."""
        wanted = set(keys)
        return [
            (index, line.raw)
            for index, line in enumerate(self.lines, start=1)
            if isinstance(line, KeyValueLine) and line.key in wanted
        ]


def upsert(document: ConfigDocument, key: str, value: str) -> ConfigDocument:
    """Return *document* with exactly one semantic ``key=value``.

    Every line matching ``^[#\\s]*key=`` is replaced in place by the
    uncommented ``key=value``.  If nothing matches the line is appended.
    """
    _validate_key(key)
    _validate_value(value)
    replacement = KeyValueLine(key, value, f"{key}={value}")

    found = False
    lines: list[Line] = []
    for line in document.lines:
        if line.matches(key):
            found = True
            lines.append(replacement)
        else:
            lines.append(line)

    if not found:
        lines.append(replacement)

    return ConfigDocument(tuple(lines), document.trailing_newline or not found)


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def read_document(path: Path) -> ConfigDocument:
    return ConfigDocument.parse(Path(path).read_text(encoding="utf-8"))


def backup_file(path: Path, stamp: str) -> Path:
    """Copy *path* to ``<path>.bak.<stamp>`` keeping mode and times."""
    path = Path(path)
    target = path.with_name(f"{path.name}.bak.{stamp}")
    shutil.copy2(path, target)
    return target


def upsert_file(path: Path, pairs: Iterable[tuple[str, str]]) -> list[str]:
    """Apply several upserts to the file at *path*.

    The file must already exist.  It is rewritten only when something
    changed.  Returns the keys whose lines changed.
    """
    path = Path(path)
    original = read_document(path)

    document = original
    changed: list[str] = []
    for key, value in pairs:
        updated = upsert(document, key, value)
        if updated != document:
            changed.append(key)
        document = updated

    if document.render() != original.render():
        path.write_text(document.render(), encoding="utf-8")
    return changed
