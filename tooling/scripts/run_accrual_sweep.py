"""Reconcile one page of pending orders against the accrual service.

Intended usage: manual invocation when the in-process worker is disabled or
when checking the accrual integration against a live service.

Example:
    python tooling/scripts/run_accrual_sweep.py --batch-size 100
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute one accrual reconciliation sweep")
    parser.add_argument(
        "--accrual-address",
        default=None,
        help="Override the accrual service base URL.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Override the number of pending orders fetched in this sweep.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Override the seconds between accrual requests.",
    )
    return parser.parse_args()


async def _run(accrual_address: str | None, batch_size: int | None, interval: float | None) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from pointmart_api.core.settings import settings  # type: ignore import-position
    from pointmart_api.db.session import async_session  # type: ignore import-position
    from pointmart_api.services.accrual import AccrualClient, DynamicRateLimiter  # type: ignore import-position
    from pointmart_api.workers import AccrualReconciliationWorker  # type: ignore import-position

    client = AccrualClient(
        accrual_address or settings.accrual_system_address,
        timeout_seconds=settings.accrual_request_timeout_seconds,
    )
    limiter = DynamicRateLimiter(
        interval or settings.accrual_rate_interval_seconds,
        settings.accrual_rate_burst,
    )
    worker = AccrualReconciliationWorker(
        async_session,  # type: ignore[arg-type]
        client=client,
        limiter=limiter,
        batch_size=batch_size or settings.accrual_batch_size,
        cooldown_seconds=settings.accrual_rate_limit_cooldown_seconds,
        backoff_step_seconds=settings.accrual_backoff_step_seconds,
    )
    try:
        return await worker.run_once()
    finally:
        await limiter.close()
        await client.aclose()


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.accrual_address, args.batch_size, args.interval))
    logger.success(
        "Accrual sweep run completed",
        fetched=summary.get("fetched", 0),
        updated=summary.get("updated", 0),
        failed=summary.get("failed", 0),
        rate_limited=summary.get("rate_limited", 0),
    )
    return 0 if summary.get("failed", 0) == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
