"""Background workers supporting async processing."""

from .accrual_reconciliation import (
    AccrualOutcome,
    AccrualReconciliationWorker,
    AccrualWorkerMetrics,
    WorkerState,
)

__all__ = [
    "AccrualOutcome",
    "AccrualReconciliationWorker",
    "AccrualWorkerMetrics",
    "WorkerState",
]
