from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import pydantic
from pydantic import ConfigDict, Field


class BaseModel(pydantic.BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class SourceConfig(BaseModel):
    # Output of an annotation tool and the patch spec describing it
    annotations: Path
    spec: Path


class RunConfig(BaseModel):
    """Settings for a single run; `None` for `vcf`/`output` means STDIN/STDOUT."""

    vcf: Optional[Path] = None
    sources: Tuple[SourceConfig, ...] = ()
    output: Optional[Path] = None
    workers: int = Field(default=0, ge=0)
    chunk_size: int = Field(default=1_000, ge=1)
    # Use worker processes rather than worker threads
    processes: bool = False
    # Abort on malformed VCF/annotation lines instead of skipping them
    strict: bool = True
