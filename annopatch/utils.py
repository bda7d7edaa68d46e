from __future__ import annotations

import contextlib
import io
import os
import re
import shutil
import sys
import tempfile
from os import fspath
from typing import IO, TYPE_CHECKING, Iterator, Optional

from annopatch.errors import RecordParseError

if TYPE_CHECKING:
    from pathlib import Path

# Output to STDOUT is kept in memory up to this size, and on disk beyond that
SPOOL_SIZE = 64 * 1024 * 1024

# Bytes that could not be decoded, as produced by the "surrogateescape" handler
_RE_UNDECODABLE = re.compile("[\udc80-\udcff]")


def open_ro(filename: str | Path | None) -> IO[str]:
    """Opens a text file for reading, with `None` or `-` meaning STDIN. Line
    terminators are returned untranslated, so that records can be written back
    exactly as they were read. Invalid UTF-8 is decoded using "surrogateescape",
    and must be reported using `check_utf8`."""
    if filename is None or fspath(filename) == "-":
        return io.TextIOWrapper(
            sys.stdin.buffer,
            encoding="utf-8",
            newline="",
            errors="surrogateescape",
        )

    return open(  # noqa: SIM115
        fspath(filename),
        "rt",
        encoding="utf-8",
        newline="",
        errors="surrogateescape",
    )


@contextlib.contextmanager
def atomic_output(filename: str | Path | None) -> Iterator[IO[str]]:
    """Yields a handle whose contents end up in `filename` (or STDOUT) only if the
    block completes without errors; on failure nothing is written."""
    if filename is None or fspath(filename) == "-":
        with tempfile.SpooledTemporaryFile(
            max_size=SPOOL_SIZE,
            mode="w+t",
            encoding="utf-8",
            newline="",
        ) as handle:
            yield handle

            handle.seek(0)
            shutil.copyfileobj(handle, sys.stdout)
            sys.stdout.flush()

        return

    filename = fspath(filename)
    dirname = os.path.dirname(os.path.abspath(filename))
    fd, tmp_filename = tempfile.mkstemp(
        prefix=".{}.".format(os.path.basename(filename)),
        suffix=".tmp",
        dir=dirname,
    )

    try:
        with open(fd, "wt", encoding="utf-8", newline="") as handle:
            yield handle

        os.replace(tmp_filename, filename)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_filename)

        raise


def fmt_count(value: int) -> str:
    return "{:,}".format(value)


def check_utf8(line: str, filename: Optional[str], lineno: Optional[int]) -> str:
    """Returns `line` if it was valid UTF-8; otherwise a RecordParseError is raised
    for the first invalid byte."""
    if not line.isascii():
        match = _RE_UNDECODABLE.search(line)
        if match is not None:
            byte = ord(match.group()) - 0xDC00
            raise RecordParseError(
                f"invalid UTF-8 byte 0x{byte:02x}",
                filename=filename,
                lineno=lineno,
            )

    return line
