"""Process-pool helpers shared by the per-variant and enrichment computations."""

import os


def worker_initializer() -> None:
    """Set BLAS thread counts to 1 in worker processes to prevent oversubscription."""
    os.environ["OPENBLAS_NUM_THREADS"] = "1"
    os.environ["MKL_NUM_THREADS"] = "1"
    os.environ["OMP_NUM_THREADS"] = "1"


def resolve_workers(requested: int, n_tasks: int) -> int:
    """Translate a worker request (-1 = all CPUs) into an effective pool size."""
    workers = (os.cpu_count() or 1) if requested == -1 else requested
    # Don't over-provision workers for small batches
    if n_tasks < workers * 2:
        workers = max(1, n_tasks // 2)
    return workers
