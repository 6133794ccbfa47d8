"""Command-line argument tokens.

An :class:`ArgumentList` keeps tokens in the order they were appended and
renders them joined by a single space.  Values are rendered literally; no
quoting or shell-escaping is applied to any token, and :class:`RawLine`
fragments are passed through exactly as configured.
"""

from __future__ import annotations

import dataclasses
import os
import shlex
from collections.abc import Iterator
from pathlib import Path
from typing import Union


@dataclasses.dataclass(frozen=True)
class Literal:
    """A plain string such as a flag or a flag's value."""

    value: str

    def render(self) -> str:
        return self.value

    def argv(self) -> list[str]:
        return [self.value]


@dataclasses.dataclass(frozen=True)
class DirectoryArg:
    """A directory, rendered as its absolute path."""

    path: Path

    def render(self) -> str:
        return os.path.abspath(self.path)

    def argv(self) -> list[str]:
        return [self.render()]


@dataclasses.dataclass(frozen=True)
class FileArg:
    """A file, rendered as its absolute path."""

    path: Path

    def render(self) -> str:
        return os.path.abspath(self.path)

    def argv(self) -> list[str]:
        return [self.render()]


@dataclasses.dataclass(frozen=True)
class RawLine:
    """A pre-formatted fragment, rendered verbatim.

    May hold several shell words; ``argv()`` splits them the way a POSIX
    shell would.
    """

    line: str

    def render(self) -> str:
        return self.line

    def argv(self) -> list[str]:
        return shlex.split(self.line, posix=os.name != "nt")


ArgumentToken = Union[Literal, DirectoryArg, FileArg, RawLine]


class ArgumentList:
    """Ordered collection of argument tokens."""

    def __init__(self) -> None:
        self._tokens: list[ArgumentToken] = []

    def add(self, *tokens: ArgumentToken | str) -> ArgumentList:
        """Append *tokens* in order; bare strings become :class:`Literal`."""
        for token in tokens:
            if isinstance(token, str):
                token = Literal(token)
            self._tokens.append(token)
        return self

    def __iter__(self) -> Iterator[ArgumentToken]:
        return iter(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __str__(self) -> str:
        return " ".join(token.render() for token in self._tokens)

    def __repr__(self) -> str:
        return f"ArgumentList({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ArgumentList):
            return NotImplemented
        return self._tokens == other._tokens

    def to_argv(self) -> list[str]:
        """Flatten into process arguments for the spawner."""
        argv: list[str] = []
        for token in self._tokens:
            argv.extend(token.argv())
        return argv
