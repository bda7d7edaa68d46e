from __future__ import annotations

import collections
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple

from annopatch.errors import RecordParseError
from annopatch.patchspec import PatchSpec
from annopatch.utils import check_utf8, fmt_count, open_ro

AlleleKey = Tuple[str, int, str, str]


class AnnotationRecord(NamedTuple):
    chrom: str
    pos: int
    ref: str
    alt: str
    fields: Tuple[str, ...]
    # Name of the annotation source and location of the record in that source
    source: str
    filename: Optional[str] = None
    lineno: Optional[int] = None

    @property
    def key(self) -> AlleleKey:
        return (self.chrom, self.pos, self.ref, self.alt)


def parse_annotation(
    spec: PatchSpec,
    line: str,
    filename: Optional[str] = None,
    lineno: Optional[int] = None,
) -> AnnotationRecord:
    fields = tuple(line.rstrip("\r\n").split(spec.delimiter))
    if len(fields) < spec.min_columns:
        raise RecordParseError(
            f"expected at least {spec.min_columns} columns, found {len(fields)}",
            filename=filename,
            lineno=lineno,
        )

    chrom_idx, pos_idx, ref_idx, alt_idx = spec.key_columns
    chrom = fields[chrom_idx]
    if not chrom:
        raise RecordParseError("empty chromosome column", filename, lineno)

    try:
        pos = int(fields[pos_idx])
    except ValueError:
        raise RecordParseError(
            f"invalid position {fields[pos_idx]!r}", filename, lineno
        ) from None

    return AnnotationRecord(
        chrom=chrom,
        pos=pos,
        ref=fields[ref_idx],
        alt=fields[alt_idx],
        fields=fields,
        source=spec.name,
        filename=filename,
        lineno=lineno,
    )


class AnnotationSource:
    """Anything that produces annotation records for the key space of a VCF."""

    def __init__(self, spec: PatchSpec) -> None:
        self.spec = spec

    @property
    def name(self) -> str:
        return self.spec.name

    def __iter__(self) -> Iterator[AnnotationRecord]:
        raise NotImplementedError()


class AnnotationFile(AnnotationSource):
    """Per-line text output of an annotation tool, parsed according to a spec."""

    def __init__(self, filename: Path, spec: PatchSpec, strict: bool = True) -> None:
        super().__init__(spec)
        self.filename = filename
        self.strict = strict
        self.lines_skipped = 0

        self._log = logging.getLogger(__name__)

    def __iter__(self) -> Iterator[AnnotationRecord]:
        filename = str(self.filename)
        with open_ro(self.filename) as handle:
            for lineno, line in enumerate(handle, start=1):
                if lineno <= self.spec.skip_lines:
                    continue
                elif line.startswith(self.spec.comment) or not line.strip():
                    continue

                try:
                    line = check_utf8(line, filename, lineno)
                    record = parse_annotation(self.spec, line, filename, lineno)
                except RecordParseError as error:
                    if self.strict:
                        raise

                    self._log.warning("skipping malformed annotation: %s", error)
                    self.lines_skipped += 1
                    continue

                yield record


class AnnotationRecords(AnnotationSource):
    """Annotation records produced by some other means, e.g. an alternative
    annotator or tests."""

    def __init__(self, spec: PatchSpec, records: Iterable[AnnotationRecord]) -> None:
        super().__init__(spec)
        self._records = list(records)

    def __iter__(self) -> Iterator[AnnotationRecord]:
        return iter(self._records)


class AnnotationIndex:
    """Read-only mapping of (chrom, pos, ref, alt) to the annotation records for
    that allele, in the order in which they were produced by the source."""

    def __init__(
        self,
        spec: PatchSpec,
        records: Dict[AlleleKey, Tuple[AnnotationRecord, ...]],
    ) -> None:
        self.spec = spec
        self._records = records

    @classmethod
    def build(
        cls,
        source: AnnotationSource,
        log: Optional[logging.Logger] = None,
    ) -> AnnotationIndex:
        if log is None:
            log = logging.getLogger(__name__)

        log.info("indexing annotations from %r", source.name)
        records: Dict[AlleleKey, List[AnnotationRecord]] = collections.defaultdict(list)
        count = 0
        for record in source:
            records[record.key].append(record)
            count += 1

        log.info(
            "indexed %s annotations for %s alleles from %r",
            fmt_count(count),
            fmt_count(len(records)),
            source.name,
        )

        return cls(
            spec=source.spec,
            records={key: tuple(values) for key, values in records.items()},
        )

    def get(self, key: AlleleKey) -> Tuple[AnnotationRecord, ...]:
        return self._records.get(key, ())