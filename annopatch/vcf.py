from __future__ import annotations

import logging
import re
from typing import IO, Dict, Iterator, List, NamedTuple, Optional, Tuple

from annopatch.errors import KeyCollisionError, RecordParseError
from annopatch.utils import check_utf8

_RE_META = re.compile(r"^##(INFO|FILTER)=<ID=([^,>]+)(.*)>\s*$")
_RE_META_ATTR = re.compile(r",(Number|Type)=([^,>]+)")

# Percent encoding of characters with special meaning in INFO values (VCF v4.3)
_INFO_ESCAPES = str.maketrans(
    {
        "%": "%25",
        ",": "%2C",
        ";": "%3B",
        "=": "%3D",
        " ": "%20",
        "\t": "%09",
        "\n": "%0A",
        "\r": "%0D",
    }
)


def encode_info_value(value: str) -> str:
    return value.translate(_INFO_ESCAPES)


class VcfRecord(NamedTuple):
    chrom: str
    pos: int
    id: str
    ref: str
    alts: Tuple[str, ...]
    qual: str
    filters: Tuple[str, ...]
    # Flags are stored with a value of None; must not be modified in place
    info: Dict[str, Optional[str]]
    samples: Tuple[str, ...]
    # The unmodified input line (including line terminator) or None if patched
    line: Optional[str] = None
    lineno: Optional[int] = None
    # Line terminator used when the record is re-serialized
    terminator: str = "\n"

    def keys(self) -> List[Tuple[str, int, str, str]]:
        return [(self.chrom, self.pos, self.ref, alt) for alt in self.alts]

    def to_line(self) -> str:
        if self.line is not None:
            return self.line

        info = ";".join(
            key if value is None else f"{key}={value}"
            for key, value in self.info.items()
        )

        fields = [
            self.chrom,
            str(self.pos),
            self.id,
            self.ref,
            ",".join(self.alts) or ".",
            self.qual,
            ";".join(self.filters) or ".",
            info or ".",
        ]
        fields.extend(self.samples)

        return "\t".join(fields) + self.terminator


def parse_info(value: str) -> Dict[str, Optional[str]]:
    info: Dict[str, Optional[str]] = {}
    if value != ".":
        for item in value.split(";"):
            if item:
                key, sep, value = item.partition("=")
                info[key] = value if sep else None

    return info


def parse_record(line: str, lineno: Optional[int] = None) -> VcfRecord:
    text = line.rstrip("\r\n")
    fields = text.split("\t")
    if len(fields) < 8:
        raise RecordParseError(f"expected at least 8 columns, found {len(fields)}")

    chrom, pos, id, ref, alts, qual, filters, info = fields[:8]
    if not chrom:
        raise RecordParseError("empty CHROM column")

    try:
        position = int(pos)
    except ValueError:
        raise RecordParseError(f"invalid POS {pos!r}") from None

    if position < 0:
        raise RecordParseError(f"invalid POS {pos!r}")
    elif not ref:
        raise RecordParseError("empty REF column")

    # . is no alternative alleles, i.e. non-variant sites
    alleles = () if alts == "." else tuple(alts.split(","))
    if not all(alleles):
        raise RecordParseError(f"empty ALT allele in {alts!r}")

    return VcfRecord(
        chrom=chrom,
        pos=position,
        id=id,
        ref=ref,
        alts=alleles,
        qual=qual,
        filters=() if filters == "." else tuple(filters.split(";")),
        info=parse_info(info),
        samples=tuple(fields[8:]),
        line=line,
        lineno=lineno,
        terminator=line[len(text) :] or "\n",
    )


class Declaration(NamedTuple):
    # Either "INFO" or "FILTER"
    section: str
    key: str
    number: str
    vcftype: str
    description: str

    def to_line(self) -> str:
        description = self.description.replace("\\", "\\\\").replace('"', '\\"')
        if self.section == "FILTER":
            return f'##FILTER=<ID={self.key},Description="{description}">\n'

        return (
            f"##INFO=<ID={self.key},Number={self.number},Type={self.vcftype},"
            f'Description="{description}">\n'
        )


class VcfHeader:
    """Header lines of a VCF file, kept verbatim so that they can be written back
    unchanged, with support for declaring additional INFO and FILTER keys."""

    def __init__(self, lines: List[str]) -> None:
        self._lines = list(lines)
        self._added: List[str] = []
        # New declarations use the same line terminator as the existing header
        self._terminator = "\n"
        if self._lines:
            first = self._lines[0]
            self._terminator = first[len(first.rstrip("\r\n")) :] or "\n"
        # (section, key) -> (index of line in self._lines, Number, Type)
        self._declared: Dict[Tuple[str, str], Tuple[int, str, str]] = {}

        for idx, line in enumerate(self._lines):
            match = _RE_META.match(line)
            if match is not None:
                section, key, rest = match.groups()
                attrs = dict(_RE_META_ATTR.findall(rest))
                self._declared[(section, key)] = (
                    idx,
                    attrs.get("Number", ""),
                    attrs.get("Type", ""),
                )

    def declare(self, declaration: Declaration) -> Optional[KeyCollisionError]:
        """Declares a INFO/FILTER key, unless already declared compatibly. If an
        INFO key was declared with a different Number/Type, the old declaration is
        replaced and the collision is returned for the caller to report."""
        section = declaration.section
        line = declaration.to_line().rstrip("\n") + self._terminator
        existing = self._declared.get((section, declaration.key))
        if existing is None:
            self._declared[(section, declaration.key)] = (
                -1 - len(self._added),
                declaration.number,
                declaration.vcftype,
            )
            self._added.append(line)
            return None

        idx, number, vcftype = existing
        if section == "FILTER" or (number, vcftype) == (
            declaration.number,
            declaration.vcftype,
        ):
            return None

        if idx >= 0:
            old_line = self._lines[idx]
            self._lines[idx] = line
        else:
            old_line = self._added[-1 - idx]
            self._added[-1 - idx] = line

        self._declared[(section, declaration.key)] = (
            idx,
            declaration.number,
            declaration.vcftype,
        )

        return KeyCollisionError(
            key=declaration.key,
            existing=old_line.rstrip("\r\n"),
            new=line.rstrip("\r\n"),
        )

    def lines(self) -> Iterator[str]:
        added = False
        for line in self._lines:
            if line.startswith("#CHROM"):
                yield from self._added
                added = True

            yield line

        if not added:
            yield from self._added


class VcfReader:
    """Streams records from a VCF file; the header is read on construction.
    Iteration is lazy and can only be performed once."""

    def __init__(
        self,
        handle: IO[str],
        filename: str = "<stdin>",
        strict: bool = True,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self._handle = handle
        self._strict = strict
        self._lineno = 0
        self._first_line: Optional[str] = None

        self.filename = filename
        self.header = self._read_header()
        self.records_read = 0
        self.records_skipped = 0

    def _read_header(self) -> VcfHeader:
        lines: List[str] = []
        for line in self._handle:
            self._lineno += 1
            if not line.startswith("#"):
                self._first_line = line
                break

            lines.append(check_utf8(line, self.filename, self._lineno))

        return VcfHeader(lines)

    def _lines(self) -> Iterator[Tuple[int, str]]:
        if self._first_line is not None:
            yield self._lineno, self._first_line
            self._first_line = None

        for line in self._handle:
            self._lineno += 1
            yield self._lineno, line

    def __iter__(self) -> Iterator[VcfRecord]:
        chrom = None
        count = 0

        for lineno, line in self._lines():
            if not line.strip():
                continue

            try:
                record = parse_record(check_utf8(line, self.filename, lineno), lineno)
            except RecordParseError as error:
                error.filename = self.filename
                error.lineno = lineno
                if self._strict:
                    raise

                self._log.warning("skipping malformed record: %s", error)
                self.records_skipped += 1
                continue

            if record.chrom != chrom:
                if chrom is not None:
                    self._log.info("processed %i records on %r", count, chrom)
                chrom = record.chrom
                count = 1
            else:
                count += 1

            self.records_read += 1
            yield record

        if chrom is not None:
            self._log.info("processed %i records on %r", count, chrom)


class VcfWriter:
    def __init__(self, handle: IO[str], header: VcfHeader) -> None:
        self._handle = handle
        self._header = header
        self._header_written = False

    def write_header(self) -> None:
        if not self._header_written:
            self._handle.writelines(self._header.lines())
            self._header_written = True

    def write(self, record: VcfRecord) -> None:
        self.write_header()
        self._handle.write(record.to_line())
