"""
api_operator/shared/parallel.py
───────────────────────────────
Parallel fan-out with first-error join.

    deployments, failed_pods = run_first_err(list_deployments, list_failed_pods)

Every callable runs on its own worker thread. run_first_err() always waits
for all of them to finish, even after one has failed, so no in-flight cluster
or storage call outlives the caller. It then raises the first exception it
observed (in completion order) or returns the results in submission order.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


def run_first_err(*fns: Callable[[], Any]) -> List[Any]:
    """
    Run fns concurrently; raise the first error after all have completed.

    Args:
        *fns: Zero-argument callables.

    Returns:
        The return values, in the order the callables were given.

    Raises:
        The first exception observed among the callables.
    """
    if not fns:
        return []

    first: Optional[BaseException] = None
    with ThreadPoolExecutor(max_workers=len(fns), thread_name_prefix="fanout") as executor:
        futures = [executor.submit(fn) for fn in fns]

        pending = set(futures)
        while pending:
            done, pending = wait(pending, return_when=FIRST_EXCEPTION)
            for future in done:
                err = future.exception()
                if err is not None and first is None:
                    first = err
                elif err is not None:
                    logger.debug("run_first_err: suppressed later error: %s", err)

    if first is not None:
        raise first
    return [future.result() for future in futures]
