"""Pytest configuration and fixtures for annopatch tests."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from annopatch.patchspec import PatchSpec, parse_patch_spec
from annopatch.sources import AnnotationIndex, AnnotationRecords, parse_annotation
from annopatch.vcf import VcfRecord, parse_record

VCF_HEADER = """\
##fileformat=VCFv4.2
##FILTER=<ID=PASS,Description="All filters passed">
##INFO=<ID=DP,Number=1,Type=Integer,Description="Total depth">
##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">
##contig=<ID=chr1,length=10000000>
##contig=<ID=chr2,length=8000000>
#CHROM	POS	ID	REF	ALT	QUAL	FILTER	INFO	FORMAT	SAMPLE1
"""

VCF_RECORDS = """\
chr1	100	.	A	G,T	50	PASS	DP=20	GT	1/2
chr1	200	rs1	C	T	60	PASS	DP=30	GT	0/1
chr1	300	.	G	A	.	.	.	GT	0/1
chr1	400	.	AT	A	40	PASS	DP=10	GT	1/1
chr2	150	.	T	C	70	PASS	DP=25;DB	GT	0/1
"""

SAMPLE_VCF_CONTENT = VCF_HEADER + VCF_RECORDS

# Per-allele gene and score annotations, as produced by an annotation tool
SAMPLE_ANNOTATIONS = """\
#Chr	Pos	Ref	Alt	Gene	Score	Impact
chr1	100	A	G	GENE1	0.9	HIGH
chr1	100	A	T	GENE1	0.1	LOW
chr1	200	C	T	GENE2	0.5	MODERATE
chr1	200	C	T	GENE3	0.7	HIGH
chr1	200	C	T	GENE2	0.5	LOW
chr2	150	T	C	GENE4	.	MODIFIER
"""

SAMPLE_SPEC = """\
Name: genes
Columns: [Chr, Pos, Ref, Alt, Gene, Score, Impact]
Rules:
  - Column: Gene
    Info: GENE
    Description: Overlapping genes
  - Column: Score
    Info: SC
    Type: Float
    Description: Deleteriousness score
    Merge: max
  - Column: Impact
    Info: IMPACT
    Merge: most-severe
    Ordering: [HIGH, MODERATE, LOW, MODIFIER]
  - Column: Score
    Filter: Deleterious
    Description: Score of at least 0.6
    Transform:
      Type: Threshold
      Min: 0.6
"""

SAMPLE_COLUMNS = ["Chr", "Pos", "Ref", "Alt", "Gene", "Score", "Impact"]


@pytest.fixture(autouse=True)
def _debug_logging(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG)


@pytest.fixture
def log() -> logging.Logger:
    return logging.getLogger("annopatch.tests")


@pytest.fixture
def sample_vcf_path(tmp_path: Path) -> Path:
    """Create a sample VCF file for testing."""
    path = tmp_path / "sample.vcf"
    path.write_text(SAMPLE_VCF_CONTENT)
    return path


@pytest.fixture
def sample_annotations_path(tmp_path: Path) -> Path:
    """Create a sample annotation table for testing."""
    path = tmp_path / "genes.tsv"
    path.write_text(SAMPLE_ANNOTATIONS)
    return path


@pytest.fixture
def sample_spec_path(tmp_path: Path) -> Path:
    """Create a sample patch spec for testing."""
    path = tmp_path / "genes.yaml"
    path.write_text(SAMPLE_SPEC)
    return path


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write arbitrary text to a file in the temporary directory."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


def make_spec(rules: List[Dict[str, object]], **kwargs: object) -> PatchSpec:
    """Construct a patch spec for the sample annotation columns."""
    data: Dict[str, object] = {"Columns": list(SAMPLE_COLUMNS), "Rules": rules}
    data.update(kwargs)

    return parse_patch_spec(data, "test")


def make_index(spec: PatchSpec, lines: List[str]) -> AnnotationIndex:
    """Build an index from tab-separated annotation lines."""
    records = [
        parse_annotation(spec, line, filename="test.tsv", lineno=lineno)
        for lineno, line in enumerate(lines, start=1)
    ]

    return AnnotationIndex.build(AnnotationRecords(spec, records))


def make_record(line: str, lineno: Optional[int] = None) -> VcfRecord:
    """Parse a single VCF line, with columns separated by whitespace."""
    fields = line.split()
    return parse_record("\t".join(fields) + "\n", lineno)
