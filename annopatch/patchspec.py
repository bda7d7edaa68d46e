from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

import pydantic
import ruamel.yaml
from pydantic import ConfigDict, Field, ValidationError, model_validator
from ruamel.yaml.error import YAMLError
from typing_extensions import Annotated, Literal, Self

from annopatch.errors import SpecError

# Reserved INFO key grammar from VCF v4.3, section 1.6.1
_RE_INFO_KEY = re.compile(r"^([A-Za-z_][0-9A-Za-z_.]*|1000G)$")
_RE_FILTER_TAG = re.compile(r"^[^\s;]+$")
_RE_INVALID_SEPARATOR = re.compile(r"[\s,;=]")

# Columns making up the (chromosome, position, reference, allele) key
KEY_COLUMNS = ("Chr", "Pos", "Ref", "Alt")

ColumnRef = Union[int, str]


def _convert(value: str, fieldtype: str) -> Union[int, float, str]:
    if fieldtype == "int":
        return int(value)
    elif fieldtype == "float":
        return float(value)

    return value


class BaseModel(pydantic.BaseModel):
    model_config = ConfigDict(extra="forbid")


class Passthrough(BaseModel):
    type: Literal["Passthrough"] = Field("Passthrough", alias="Type")

    @property
    def is_boolean(self) -> bool:
        return False

    def apply(self, value: str) -> str:
        return value


class Format(BaseModel):
    type: Literal["Format"] = Field(..., alias="Type")
    format: str = Field(..., alias="Format")
    fieldtype: Literal["int", "float", "str"] = Field(alias="FieldType", default="float")

    @property
    def is_boolean(self) -> bool:
        return False

    @model_validator(mode="after")
    def _check_format(self) -> Self:
        try:
            self.format.format(_convert("0", self.fieldtype))
        except (IndexError, KeyError, ValueError) as error:
            raise ValueError(f"invalid format string {self.format!r}: {error}")

        return self

    def apply(self, value: str) -> str:
        return self.format.format(_convert(value, self.fieldtype))


class Threshold(BaseModel):
    type: Literal["Threshold"] = Field(..., alias="Type")
    min: Optional[float] = Field(alias="Min", default=None)
    max: Optional[float] = Field(alias="Max", default=None)

    @property
    def is_boolean(self) -> bool:
        return True

    @model_validator(mode="after")
    def _check_bounds(self) -> Self:
        if self.min is None and self.max is None:
            raise ValueError("Threshold requires Min and/or Max")
        elif self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"Min ({self.min}) is greater than Max ({self.max})")

        return self

    def apply(self, value: str) -> bool:
        number = float(value)
        if self.min is not None and number < self.min:
            return False
        elif self.max is not None and number > self.max:
            return False

        return True


class Match(BaseModel):
    type: Literal["Match"] = Field(..., alias="Type")
    values: List[str] = Field(..., alias="Values", min_length=1)

    @property
    def is_boolean(self) -> bool:
        return True

    def apply(self, value: str) -> bool:
        return value in self.values


Transform = Annotated[
    Union[Passthrough, Format, Threshold, Match], Field(discriminator="type")
]


class _Rule(BaseModel):
    column: ColumnRef = Field(..., alias="Column")
    info: Optional[str] = Field(alias="Info", default=None)
    filter: Optional[str] = Field(alias="Filter", default=None)
    description: Optional[str] = Field(alias="Description", default=None)
    vcftype: Optional[Literal["Integer", "Float", "Flag", "Character", "String"]] = (
        Field(alias="Type", default=None)
    )
    transform: Transform = Field(alias="Transform", default_factory=Passthrough)
    merge: Literal["unique", "all", "first", "last", "min", "max", "most-severe"] = (
        Field(alias="Merge", default="unique")
    )
    ordering: Optional[List[str]] = Field(alias="Ordering", default=None)
    separator: str = Field(alias="Separator", default="&")
    split_by: Optional[str] = Field(alias="SplitBy", default=None)
    overwrite: bool = Field(alias="Overwrite", default=True)

    @model_validator(mode="after")
    def _check_rule(self) -> Self:
        if (self.info is None) == (self.filter is None):
            raise ValueError("exactly one of Info or Filter must be set")

        if self.info is not None:
            if not _RE_INFO_KEY.match(self.info):
                raise ValueError(f"invalid INFO key {self.info!r}")

            if self.vcftype is None:
                self.vcftype = "Flag" if self.transform.is_boolean else "String"

            if self.transform.is_boolean != (self.vcftype == "Flag"):
                raise ValueError(
                    f"{self.transform.type} transform cannot be used with "
                    f"INFO type {self.vcftype}"
                )
        else:
            assert self.filter is not None
            if not _RE_FILTER_TAG.match(self.filter) or self.filter == "0":
                raise ValueError(f"invalid FILTER tag {self.filter!r}")
            elif self.vcftype is not None:
                raise ValueError("Type cannot be set for FILTER rules")
            elif not self.transform.is_boolean:
                raise ValueError("FILTER rules require a Threshold or Match transform")

        if (self.merge == "most-severe") != (self.ordering is not None):
            raise ValueError("Ordering is required by, and only valid for, most-severe")

        if not self.separator or _RE_INVALID_SEPARATOR.search(self.separator):
            raise ValueError(f"invalid Separator {self.separator!r}")
        elif self.split_by == "":
            raise ValueError("SplitBy cannot be empty")

        return self


class _Key(BaseModel):
    chr: ColumnRef = Field(alias="Chr", default=0)
    pos: ColumnRef = Field(alias="Pos", default=1)
    ref: ColumnRef = Field(alias="Ref", default=2)
    alt: ColumnRef = Field(alias="Alt", default=3)


class _SpecFile(BaseModel):
    name: Optional[str] = Field(alias="Name", default=None)
    columns: Optional[List[str]] = Field(alias="Columns", default=None)
    key: _Key = Field(alias="Key", default_factory=_Key)
    delimiter: str = Field(alias="Delimiter", default="\t", min_length=1)
    comment: str = Field(alias="Comment", default="#", min_length=1)
    skip_lines: int = Field(alias="SkipLines", default=0, ge=0)
    alleles: Literal["vcf", "trimmed"] = Field(alias="Alleles", default="vcf")
    rules: List[_Rule] = Field(alias="Rules", default_factory=list)


class PatchRule(NamedTuple):
    # Index of the source column in the annotation file
    column: int
    column_name: str
    # Either "INFO" or "FILTER"
    target: str
    key: str
    vcftype: str
    description: str
    transform: Union[Passthrough, Format, Threshold, Match]
    merge: str
    # Rank of values for the most-severe policy; lower is more severe
    ordering: Dict[str, int]
    separator: str
    split_by: Optional[str]
    overwrite: bool

    @property
    def is_boolean(self) -> bool:
        return self.transform.is_boolean

    @property
    def number(self) -> str:
        return "0" if self.is_boolean else "A"


class PatchSpec(NamedTuple):
    name: str
    columns: Tuple[str, ...]
    # Column indices of the chromosome, position, reference and allele
    key_columns: Tuple[int, int, int, int]
    delimiter: str
    comment: str
    skip_lines: int
    alleles: str
    rules: Tuple[PatchRule, ...]

    @property
    def min_columns(self) -> int:
        """Minimum number of columns a line must have to be usable."""
        indices = list(self.key_columns)
        indices.extend(rule.column for rule in self.rules)

        return max(indices) + 1


def _resolve_column(
    columns: Optional[List[str]],
    ref: ColumnRef,
    location: str,
) -> Tuple[int, str]:
    if isinstance(ref, int):
        if ref < 0:
            raise SpecError(f"{location}: negative column index {ref}")
        elif columns is None:
            return ref, f"#{ref}"
        elif ref >= len(columns):
            raise SpecError(
                f"{location}: column index {ref} out of range; "
                f"only {len(columns)} columns defined"
            )

        return ref, columns[ref]
    elif columns is None:
        raise SpecError(f"{location}: column {ref!r} referenced by name, but no Columns")
    elif ref not in columns:
        raise SpecError(f"{location}: unknown column {ref!r}")

    return columns.index(ref), ref


def parse_patch_spec(data: object, name: str) -> PatchSpec:
    """Validates a patch spec loaded from YAML (or constructed by hand)."""
    if data is None:
        data = {}

    try:
        raw = _SpecFile.model_validate(data, strict=True)
    except ValidationError as error:
        messages = []
        for err in error.errors():
            location = ".".join(map(str, err["loc"])) or "root"
            messages.append(f"error at {location}: {err['msg']}")

        raise SpecError("; ".join(messages)) from None

    if raw.name == "":
        raise SpecError("Name cannot be empty")

    if raw.columns is not None:
        duplicates = sorted({it for it in raw.columns if raw.columns.count(it) > 1})
        if duplicates:
            raise SpecError(f"duplicate column names: {', '.join(duplicates)}")

    key_columns = tuple(
        _resolve_column(raw.columns, getattr(raw.key, field.lower()), f"Key.{field}")[0]
        for field in KEY_COLUMNS
    )

    if len(set(key_columns)) != len(key_columns):
        raise SpecError(f"Key columns are not distinct: {key_columns}")

    rules: List[PatchRule] = []
    for idx, rule in enumerate(raw.rules):
        column, column_name = _resolve_column(raw.columns, rule.column, f"Rules.{idx}")
        if column in key_columns:
            raise SpecError(f"Rules.{idx}: key column {column_name!r} used as value")

        if rule.info is not None:
            target, key = "INFO", rule.info
            assert rule.vcftype is not None
            vcftype = rule.vcftype
        else:
            assert rule.filter is not None
            target, key, vcftype = "FILTER", rule.filter, "Flag"

        description = rule.description
        if description is None:
            description = f"{column_name} from {raw.name or name}"

        rules.append(
            PatchRule(
                column=column,
                column_name=column_name,
                target=target,
                key=key,
                vcftype=vcftype,
                description=description,
                transform=rule.transform,
                merge=rule.merge,
                ordering={value: idx for idx, value in enumerate(rule.ordering or ())},
                separator=rule.separator,
                split_by=rule.split_by,
                overwrite=rule.overwrite,
            )
        )

    return PatchSpec(
        name=raw.name or name,
        columns=tuple(raw.columns or ()),
        key_columns=key_columns,  # type: ignore[arg-type]
        delimiter=raw.delimiter,
        comment=raw.comment,
        skip_lines=raw.skip_lines,
        alleles=raw.alleles,
        rules=tuple(rules),
    )


def load_patch_spec(log: logging.Logger, filepath: Path) -> PatchSpec:
    yaml = ruamel.yaml.YAML(typ="safe", pure=True)
    yaml.version = (1, 1)

    log.info("reading patch spec from %s", filepath)
    with filepath.open("rt") as handle:
        try:
            data: object = yaml.load(handle)
        except YAMLError as error:
            raise SpecError(f"{filepath}: invalid YAML: {error}") from None

    if data is None:
        log.warning("patch spec %s is empty", filepath)

    try:
        spec = parse_patch_spec(data, filepath.stem)
    except SpecError as error:
        raise SpecError(f"{filepath}: {error}") from None

    for rule in spec.rules:
        log.info("   [✓] %s -> %s/%s", rule.column_name, rule.target, rule.key)

    return spec
