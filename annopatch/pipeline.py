from __future__ import annotations

import logging
import time
from typing import List, Optional

from annopatch.config import RunConfig
from annopatch.coordinator import Coordinator
from annopatch.merge import Merger
from annopatch.patchspec import PatchSpec, load_patch_spec
from annopatch.sources import AnnotationFile, AnnotationIndex
from annopatch.utils import atomic_output, fmt_count, open_ro
from annopatch.vcf import VcfReader, VcfWriter


def load_specs(log: logging.Logger, config: RunConfig) -> List[PatchSpec]:
    return [load_patch_spec(log, source.spec) for source in config.sources]


def build_indices(
    log: logging.Logger,
    config: RunConfig,
    specs: List[PatchSpec],
) -> List[AnnotationIndex]:
    indices: List[AnnotationIndex] = []
    for source, spec in zip(config.sources, specs):
        annotations = AnnotationFile(source.annotations, spec, strict=config.strict)
        indices.append(AnnotationIndex.build(annotations, log))

        if annotations.lines_skipped:
            log.warning(
                "skipped %s malformed lines in %s",
                fmt_count(annotations.lines_skipped),
                source.annotations,
            )

    return indices


def run(config: RunConfig, log: Optional[logging.Logger] = None) -> None:
    """Patches `config.vcf` using every configured annotation source and writes
    the result to `config.output`. Either the complete output is written, or an
    exception is raised and nothing is written."""
    if log is None:
        log = logging.getLogger("annopatch")

    start_time = time.time()

    # All specs are validated before any annotations are read
    specs = load_specs(log, config)
    for spec in specs:
        log.info("applying %i rules from %r", len(spec.rules), spec.name)

    merger = Merger(build_indices(log, config, specs))
    coordinator = Coordinator(
        merger=merger,
        workers=config.workers,
        chunk_size=config.chunk_size,
        processes=config.processes,
    )

    vcf_name = "<stdin>" if config.vcf is None else str(config.vcf)
    log.info("reading VCF from %s", vcf_name)
    with open_ro(config.vcf) as in_handle:
        reader = VcfReader(in_handle, filename=vcf_name, strict=config.strict)
        merger.declare(log, reader.header)

        n_patched = 0
        with atomic_output(config.output) as out_handle:
            writer = VcfWriter(out_handle, reader.header)
            writer.write_header()

            for record in coordinator.patch(reader):
                if record.line is None:
                    n_patched += 1

                writer.write(record)

    if reader.records_skipped:
        log.warning("skipped %s malformed records", fmt_count(reader.records_skipped))

    log.info(
        "patched %s of %s records in %.1fs",
        fmt_count(n_patched),
        fmt_count(reader.records_read),
        time.time() - start_time,
    )
