"""Membership sweep: reconcile every group in one pass.

Run once from the command line::

    python -m groupwork.jobs.reconcile_groups
    groupwork-reconcile

or periodically inside the API process by setting
``RECONCILE_SWEEP_ENABLED=true`` (the loop is started on application startup).
The sweep goes through the same versioned writes as ordinary requests, so it
is safe to run alongside them.
"""
import asyncio
import logging
from typing import Any, Optional

from groupwork.config import settings
from groupwork.database import SessionLocal
from groupwork.services.integrity import reconcile_all_groups

logger = logging.getLogger(__name__)

# Strong reference to the running sweep; the event loop only holds tasks weakly
_sweep_task: Optional[asyncio.Task] = None


def reconcile_once() -> dict[str, Any]:
    """Open a fresh session, sweep every group, return the summary."""
    with SessionLocal() as db:
        return reconcile_all_groups(db)


async def _loop_forever(interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(reconcile_once)
        except Exception:
            logger.exception("Membership sweep iteration failed")


def start_reconcile_loop() -> None:
    """Schedule the periodic sweep on the running event loop, if there is one."""
    global _sweep_task
    if _sweep_task is not None and not _sweep_task.done():
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning("No running event loop; periodic membership sweep not started")
        return
    _sweep_task = loop.create_task(_loop_forever(settings.RECONCILE_SWEEP_INTERVAL_SECONDS))
    logger.info("Membership sweep scheduled every %ds", settings.RECONCILE_SWEEP_INTERVAL_SECONDS)


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    reconcile_once()


if __name__ == "__main__":
    main()
