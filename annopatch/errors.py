from __future__ import annotations

from os import fspath
from pathlib import Path
from typing import Any, Optional, Tuple, Union


class PatchError(Exception):
    """Base class for errors reported while patching a VCF file."""

    def __reduce__(self) -> Tuple[Any, ...]:
        # Subclasses take keyword arguments, which the default exception pickling
        # cannot restore; required for errors raised in worker processes
        return (_rebuild, (type(self), self.args, self.__dict__))


class SpecError(PatchError):
    """Malformed or inconsistent patch spec."""


class RecordParseError(PatchError):
    """Malformed VCF or annotation line."""

    def __init__(
        self,
        message: str,
        filename: Optional[Union[str, Path]] = None,
        lineno: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.filename = None if filename is None else fspath(filename)
        self.lineno = lineno

    def __str__(self) -> str:
        location = []
        if self.filename is not None:
            location.append(self.filename)
        if self.lineno is not None:
            location.append(str(self.lineno))

        if location:
            return "{}: {}".format(":".join(location), self.message)

        return self.message


class KeyCollisionError(PatchError):
    """A rule declares an INFO key already declared differently in the header."""

    def __init__(self, key: str, existing: str, new: str) -> None:
        super().__init__(key, existing, new)
        self.key = key
        self.existing = existing
        self.new = new

    def __str__(self) -> str:
        return "INFO key {!r} already declared as {!r}; replacing with {!r}".format(
            self.key, self.existing, self.new
        )


def _rebuild(cls: type, args: Tuple[Any, ...], state: dict) -> PatchError:
    error = cls.__new__(cls)
    Exception.__init__(error, *args)
    error.__dict__.update(state)

    return error
