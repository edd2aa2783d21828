"""Application entry point: owns the store and its lifecycle.

    with open_store() as store:
        store.subscribe(render)
        ...

The store is loaded (stale day archived), its background jobs started, and
on exit the jobs stop and pending state is flushed.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

from planfact.store import ProgressStore
from planfact.workspace import workspace_root

logger = logging.getLogger(__name__)


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Configure root logging for the entry point (PLANFACT_LOG_LEVEL overrides)."""
    if level is None:
        level = os.environ.get("PLANFACT_LOG_LEVEL", "INFO")
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=level,
    )
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    return logging.getLogger("planfact")


@contextmanager
def open_store(
    root: Path | None = None,
    clock: Callable[[], datetime] | None = None,
    start: bool = True,
) -> Iterator[ProgressStore]:
    """Load a store for *root*, run it for the duration of the block, then flush."""
    store = ProgressStore(root if root is not None else workspace_root(), clock=clock)
    store.load()
    if start:
        store.start()
    try:
        yield store
    finally:
        store.close()


def main() -> None:
    """Run the store headless until interrupted, logging every change."""
    log = setup_logging()
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    with open_store() as store:
        def on_change() -> None:
            s = store.get_stats()
            log.info(
                "Level %d (%d/%d XP), today %d XP, streak %d",
                s.current_level, s.current_xp, s.next_level_xp, s.today_xp, s.streak,
            )

        store.subscribe(on_change)
        log.info("PlanFact store running at %s (day %s)", store.root, store.today().isoformat())
        try:
            stop.wait()
        except KeyboardInterrupt:
            pass
    log.info("Store flushed; bye")


if __name__ == "__main__":
    main()
