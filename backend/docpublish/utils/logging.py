"""
DocPublish — Pipeline step logger with duration tracking.
"""

import logging
import time
from contextlib import contextmanager
from typing import Generator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("docpublish")


@contextmanager
def step_timer(step_name: str) -> Generator[None, None, None]:
    """Log the start of a step, then its duration and whether it raised."""
    logger.info("▶ %s — started", step_name)
    start = time.perf_counter()
    try:
        yield
    except BaseException:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("✗ %s — aborted after %.0f ms", step_name, elapsed_ms)
        raise
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info("✔ %s — completed in %.0f ms", step_name, elapsed_ms)


def log_output_tail(output: str, lines: int = 20, level: int = logging.ERROR) -> None:
    """Echo the last lines of a subprocess transcript, indented under the step."""
    for line in output.splitlines()[-lines:]:
        logger.log(level, "    | %s", line)
