from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

from annopatch.errors import KeyCollisionError, RecordParseError
from annopatch.patchspec import PatchRule
from annopatch.sources import AlleleKey, AnnotationIndex, AnnotationRecord
from annopatch.vcf import Declaration, VcfHeader, VcfRecord, encode_info_value

# Annotation values treated as missing
MISSING_VALUES = frozenset(("", "."))


def trimmed_allele_keys(record: VcfRecord) -> List[AlleleKey]:
    """Returns per-allele keys with the leading base shared by REF and all ALTs
    removed from indels and with empty sequences written as '-', matching the
    representation used by VEP/ANNOVAR style annotation tools."""
    start = record.pos
    ref = record.ref
    alts = list(record.alts)

    if any(len(ref) != len(allele) for allele in alts):
        # find out if all the alts start with the same base, ignoring "*"
        any_non_star = False
        first_bases = {ref[0]}
        for alt in alts:
            if not alt.startswith("*"):
                any_non_star = True
                first_bases.add(alt[0])

        if any_non_star and len(first_bases) == 1:
            start += 1
            ref = ref[1:] or "-"
            for idx, alt in enumerate(alts):
                if not alt.startswith("*"):
                    alts[idx] = alt[1:] or "-"

    return [(record.chrom, start, ref, alt) for alt in alts]


def allele_keys(record: VcfRecord, style: str) -> List[AlleleKey]:
    if style == "trimmed":
        return trimmed_allele_keys(record)

    return record.keys()


class Merger:
    """Applies the rules of each annotation source to VCF records.

    Sources are applied in the order given; when several rules target the same
    INFO key, the value written by the last rule wins.
    """

    def __init__(self, indices: Sequence[AnnotationIndex]) -> None:
        self.indices = tuple(indices)

    def declarations(self) -> List[Declaration]:
        result: List[Declaration] = []
        for index in self.indices:
            for rule in index.spec.rules:
                result.append(
                    Declaration(
                        section=rule.target,
                        key=rule.key,
                        number=rule.number,
                        vcftype=rule.vcftype,
                        description=rule.description,
                    )
                )

        return result

    def declare(self, log: logging.Logger, header: VcfHeader) -> List[KeyCollisionError]:
        """Adds the INFO/FILTER keys written by this merger to the header."""
        collisions: List[KeyCollisionError] = []
        for declaration in self.declarations():
            collision = header.declare(declaration)
            if collision is not None:
                log.warning("%s", collision)
                collisions.append(collision)

        return collisions

    def patch_chunk(self, records: Iterable[VcfRecord]) -> List[VcfRecord]:
        return [self.patch(record) for record in records]

    def patch(self, record: VcfRecord) -> VcfRecord:
        """Returns the record with annotations applied. The record itself is
        returned if no annotations applied, or if they made no difference."""
        if not record.alts:
            return record

        info: Optional[Dict[str, Optional[str]]] = None
        filters: Optional[List[str]] = None
        keys: Dict[str, List[AlleleKey]] = {}

        for index in self.indices:
            style = index.spec.alleles
            if style not in keys:
                keys[style] = allele_keys(record, style)

            matches = [index.get(key) for key in keys[style]]
            if not any(matches):
                continue

            for rule in index.spec.rules:
                values = [self._collect(rule, records) for records in matches]

                if rule.target == "FILTER":
                    current_filters = record.filters if filters is None else filters
                    if any(values) and rule.key not in current_filters:
                        # PASS is only valid if no filters have been applied
                        filters = [it for it in current_filters if it != "PASS"]
                        filters.append(rule.key)
                    continue

                if rule.is_boolean:
                    if not any(values):
                        continue
                    value: Optional[str] = None
                elif all(it is None for it in values):
                    continue
                else:
                    value = ",".join("." if it is None else it for it in values)

                current = record.info if info is None else info
                if rule.key in current:
                    if not rule.overwrite or current[rule.key] == value:
                        continue

                if info is None:
                    info = dict(record.info)
                info[rule.key] = value

        if info is None and filters is None:
            return record

        return record._replace(
            info=record.info if info is None else info,
            filters=record.filters if filters is None else tuple(filters),
            line=None,
        )

    def _collect(
        self,
        rule: PatchRule,
        records: Sequence[AnnotationRecord],
    ) -> Union[None, bool, str]:
        """Transforms and combines the values of a single allele."""
        values: List[Union[bool, str]] = []
        for record in records:
            cell = record.fields[rule.column]
            cells = [cell] if rule.split_by is None else cell.split(rule.split_by)

            for cell in cells:
                if cell in MISSING_VALUES:
                    continue

                try:
                    values.append(rule.transform.apply(cell))
                except ValueError:
                    raise RecordParseError(
                        f"invalid value {cell!r} in column {rule.column_name!r}",
                        filename=record.filename or record.source,
                        lineno=record.lineno,
                    ) from None

        if not values:
            return None
        elif rule.is_boolean:
            return any(values)

        return _combine(rule, [str(value) for value in values], records)


def _combine(
    rule: PatchRule,
    values: List[str],
    records: Sequence[AnnotationRecord],
) -> str:
    if rule.merge == "unique":
        values = list(dict.fromkeys(values))
    elif rule.merge == "first":
        values = values[:1]
    elif rule.merge == "last":
        values = values[-1:]
    elif rule.merge in ("min", "max"):
        try:
            numbers = [float(value) for value in values]
        except ValueError:
            record = records[0]
            raise RecordParseError(
                f"non-numeric values {values!r} in column {rule.column_name!r} "
                f"cannot be combined using {rule.merge!r}",
                filename=record.filename or record.source,
                lineno=record.lineno,
            ) from None

        func = min if rule.merge == "min" else max
        values = [values[numbers.index(func(numbers))]]
    elif rule.merge == "most-severe":
        # Values not found in the ordering are considered the least severe
        default = len(rule.ordering)
        values = [min(values, key=lambda it: rule.ordering.get(it, default))]
    # "all" keeps every value

    return rule.separator.join(encode_info_value(value) for value in values)
