"""Service layer helpers for run execution and the worker queue."""

from .ledger import LedgerAdapter
from .queue import RunQueueError, RunQueueService
from .runner import RunStores, execute_run, open_adapter, run_inline, source_configs

__all__ = [
    "LedgerAdapter",
    "RunQueueError",
    "RunQueueService",
    "RunStores",
    "execute_run",
    "open_adapter",
    "run_inline",
    "source_configs",
]
