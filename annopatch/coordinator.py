from __future__ import annotations

import collections
import itertools
import logging
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Deque, Iterable, Iterator, List, NamedTuple, Optional

from annopatch.merge import Merger
from annopatch.vcf import VcfRecord


class Chunk(NamedTuple):
    # Sequence number of the chunk in the input
    index: int
    records: List[VcfRecord]


def chunked(records: Iterable[VcfRecord], size: int) -> Iterator[Chunk]:
    if size < 1:
        raise ValueError(f"invalid chunk size {size}")

    it = iter(records)
    for index in itertools.count():
        chunk = list(itertools.islice(it, size))
        if not chunk:
            break

        yield Chunk(index=index, records=chunk)


# Merger used by worker processes; set once per process by `_init_worker`
_WORKER_MERGER: Optional[Merger] = None


def _init_worker(merger: Merger) -> None:
    global _WORKER_MERGER
    _WORKER_MERGER = merger


def _patch_chunk_in_worker(chunk: Chunk) -> Chunk:
    assert _WORKER_MERGER is not None
    return Chunk(index=chunk.index, records=_WORKER_MERGER.patch_chunk(chunk.records))


def _patch_chunk(merger: Merger, chunk: Chunk) -> Chunk:
    return Chunk(index=chunk.index, records=merger.patch_chunk(chunk.records))


class Coordinator:
    """Patches a stream of records using a pool of workers, returning patched
    records in input order.

    Records are split into contiguous chunks that are patched concurrently. At most
    `2 * workers` chunks are pending at any time, and chunks are yielded strictly
    in sequence order, so a chunk that finishes early waits for earlier chunks.
    With zero workers, records are patched sequentially in the calling thread.
    """

    def __init__(
        self,
        merger: Merger,
        workers: int = 0,
        chunk_size: int = 1_000,
        processes: bool = False,
    ) -> None:
        if workers < 0:
            raise ValueError(f"invalid number of workers {workers}")
        elif chunk_size < 1:
            raise ValueError(f"invalid chunk size {chunk_size}")

        self.merger = merger
        self.workers = workers
        self.chunk_size = chunk_size
        self.processes = processes

        self._log = logging.getLogger(__name__)

    def patch(self, records: Iterable[VcfRecord]) -> Iterator[VcfRecord]:
        if not self.workers:
            for record in records:
                yield self.merger.patch(record)
            return

        executor = self._executor()
        pending: Deque[Future[Chunk]] = collections.deque()
        max_pending = 2 * self.workers
        next_index = 0

        try:
            for chunk in chunked(records, self.chunk_size):
                pending.append(self._submit(executor, chunk))

                while len(pending) >= max_pending:
                    result = pending.popleft().result()
                    assert result.index == next_index, (result.index, next_index)
                    next_index += 1

                    yield from result.records

            while pending:
                result = pending.popleft().result()
                assert result.index == next_index, (result.index, next_index)
                next_index += 1

                yield from result.records
        except BaseException:
            if pending:
                self._log.warning("cancelling %i pending chunks", len(pending))

            for future in pending:
                future.cancel()

            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _executor(self) -> Executor:
        if self.processes:
            self._log.info("patching records using %i processes", self.workers)
            return ProcessPoolExecutor(
                max_workers=self.workers,
                initializer=_init_worker,
                initargs=(self.merger,),
            )

        self._log.info("patching records using %i threads", self.workers)
        return ThreadPoolExecutor(max_workers=self.workers)

    def _submit(self, executor: Executor, chunk: Chunk) -> Future[Chunk]:
        if self.processes:
            return executor.submit(_patch_chunk_in_worker, chunk)

        return executor.submit(_patch_chunk, self.merger, chunk)
