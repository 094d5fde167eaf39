"""
CPU Backend: multiprocessing + Numba JIT

Parallelization strategy:
- Split background cells (or boundary faces) into n_workers contiguous chunks
- Each worker integrates its chunk into a private accumulator
- Merge the accumulators in chunk order in the parent

Every point's accumulator is written by one worker at a time and the
reduction is a plain sum, so results only differ across worker counts by
floating-point summation order.  The weight/basis pair contraction of
each cell runs in a Numba-compiled kernel or in numpy.einsum.
"""
import logging
from multiprocessing import Pool, cpu_count
from typing import List, Optional

import numpy as np

from .base import IntegrationBackend

logger = logging.getLogger(__name__)


def _worker_integrate(args):
    """Worker function executed in each Pool process.

    Receives (context, cell_indices, surface_indices, use_numba) and returns
    the chunk's IntegralAccumulator.
    """
    from ..integration import integrate_chunk

    context, cell_indices, surface_indices, use_numba = args
    return integrate_chunk(context, cell_indices, surface_indices, use_numba)


class CPUBackend(IntegrationBackend):
    """CPU-parallel background-mesh integration backend.

    Uses multiprocessing.Pool for inter-core parallelism and (optionally)
    Numba JIT for the per-cell pair contraction.

    Parameters
    ----------
    n_workers : int or None
        Number of worker processes.  ``None`` -> ``os.cpu_count()``.
        With one worker everything runs in-process.
    use_numba : bool
        If True (default), use the JIT-compiled pair kernel.
    """

    def __init__(self, n_workers: Optional[int] = None, use_numba: bool = True):
        if n_workers is None:
            n_workers = cpu_count() or 1
        self._n_workers = max(1, n_workers)
        self._use_numba = use_numba

    @property
    def n_workers(self) -> int:
        return self._n_workers

    @property
    def use_numba(self) -> bool:
        return self._use_numba

    # ------------------------------------------------------------------
    # IntegrationBackend interface
    # ------------------------------------------------------------------

    def integrate_cells(self, context):
        chunks = self._split(len(context.cells))
        args = [(context, chunk, [], self._use_numba) for chunk in chunks]
        return self._dispatch(context, args)

    def integrate_surfaces(self, context):
        chunks = self._split(len(context.surfaces))
        args = [(context, [], chunk, self._use_numba) for chunk in chunks]
        return self._dispatch(context, args)

    def get_name(self) -> str:
        n = self._n_workers
        mode = "Numba JIT" if self._use_numba else "numpy"
        return f"CPU ({n} core{'s' if n > 1 else ''}, {mode})"

    def is_available(self) -> bool:
        return True  # CPU is always available

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _split(self, n_items: int) -> List[List[int]]:
        """Contiguous, non-empty chunks of item indices."""
        n_chunks = max(1, min(self._n_workers, n_items))
        return [chunk.tolist() for chunk in np.array_split(np.arange(n_items), n_chunks)]

    def _dispatch(self, context, worker_args):
        if len(worker_args) == 1:
            results = [_worker_integrate(worker_args[0])]
        else:
            with Pool(processes=len(worker_args)) as pool:
                results = pool.map(_worker_integrate, worker_args)
        return self._merge_results(context, results)

    def _merge_results(self, context, results):
        """Sum worker accumulators in chunk order."""
        total = context.new_accumulator()
        for result in results:
            total.merge(result)
        logger.debug("merged %d worker accumulators", len(results))
        return total
