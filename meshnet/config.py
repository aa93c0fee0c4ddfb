"""Reader for ``name = value`` configuration files."""

from __future__ import annotations

import io
from typing import Iterator, TextIO

from .errors import error


class ConfigReader:
    """Iterate over ``(name, value)`` pairs in a configuration text stream.

    Values may be bare tokens, double-quoted single-line strings or
    single-quoted multi-line strings; ``#`` starts a comment. Iteration stops
    at the first entry that is not of the form ``name = value``.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._eof = False
        self._ch = self._get_char()

    def _get_char(self) -> str | None:
        ch = self._stream.read(1)
        if not ch:
            self._eof = True
            return None
        return ch

    def __iter__(self) -> Iterator[tuple[str, str]]:
        while True:
            pair = self._next_pair()
            if pair is None:
                return
            yield pair

    def _next_pair(self) -> tuple[str, str] | None:
        if self._eof:
            return None
        name, _ = self._next_token()
        if name == "=":
            return None
        sep, new_line = self._next_token()
        if new_line or sep != "=":
            return None
        val, new_line = self._next_token()
        if new_line or val == "=":
            return None
        return name, val

    def _skip_line(self) -> None:
        while True:
            self._ch = self._get_char()
            if self._ch is None or self._ch in "\n\r":
                return

    def _parse_str(self) -> str:
        parts: list[str] = []
        while (ch := self._get_char()) is not None:
            self._ch = ch
            if ch == "\\":
                parts.append(self._get_char() or "")
            elif ch == '"':
                return "".join(parts)
            elif ch in "\r\n":
                error("ConfigReader: unterminated string")
            else:
                parts.append(ch)
        self._ch = None
        error("ConfigReader: unterminated string")
        return ""

    def _parse_str_ml(self) -> str:
        parts: list[str] = []
        while (ch := self._get_char()) is not None:
            self._ch = ch
            if ch == "\\":
                parts.append(self._get_char() or "")
            elif ch == "'":
                return "".join(parts)
            else:
                parts.append(ch)
        self._ch = None
        error("unterminated string")
        return ""

    def _next_token(self) -> tuple[str, bool]:
        """Return the next token and whether a line break came before it."""
        tok = ""
        new_line = False
        while self._ch is not None:
            ch = self._ch
            if ch == "#":
                self._skip_line()
                new_line = True
            elif ch in "\"'":
                if tok:
                    error("ConfigReader: token followed directly by string")
                tok = self._parse_str() if ch == '"' else self._parse_str_ml()
                self._ch = self._get_char()
                return tok, new_line
            elif ch == "=":
                if not tok:
                    self._ch = self._get_char()
                    tok = "="
                return tok, new_line
            elif ch in "\r\n\t ":
                if ch in "\r\n" and not tok:
                    new_line = True
                self._ch = self._get_char()
                if tok:
                    return tok, new_line
            else:
                tok += ch
                self._ch = self._get_char()
        return tok, not tok


def parse_config(text: str) -> list[tuple[str, str]]:
    """Parse configuration text into a list of ``(name, value)`` pairs."""
    return list(ConfigReader(io.StringIO(text)))


def load_config(fname: str) -> list[tuple[str, str]]:
    """Read a configuration file into a list of ``(name, value)`` pairs."""
    try:
        fp = open(fname, "r")
    except OSError:
        error("cannot open file %s", fname)
    with fp:
        return list(ConfigReader(fp))