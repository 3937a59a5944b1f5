import linecache
import sys
import time
from contextlib import contextmanager

from librechat_tests.plugin import log_step


def _failure_message(exc_value, exc_tb) -> str:
    """Build a readable message for a failed step.

    Bare ``assert`` statements carry no message when pytest assertion
    rewriting is off (the runner loads tests through ``pytest.main``), so the
    failing source line is reported instead.
    """
    error_msg = str(exc_value) if exc_value.args else ""
    if error_msg or not isinstance(exc_value, AssertionError):
        return error_msg

    tb = exc_tb
    while tb.tb_next:
        tb = tb.tb_next
    source_line = linecache.getline(tb.tb_frame.f_code.co_filename, tb.tb_lineno).strip()
    return source_line if source_line.startswith("assert ") else ""


@contextmanager
def step(description: str, continue_on_failure: bool = False, step_type: str = "action", start: float = None):
    """Context manager for test steps with logging.

    Args:
        description: Human-readable step description
        continue_on_failure: If True, don't re-raise exceptions
        step_type: "action" for interactions, "wait" for synchronization
        start: Optional start timestamp (defaults to now)

    Output is handled by the test runner's on_event callback.
    """
    start_time = start or time.time()

    try:
        yield
        duration_ms = int((time.time() - start_time) * 1000)
        log_step(description, "passed", duration_ms=duration_ms, step_type=step_type)
    except Exception:
        duration_ms = int((time.time() - start_time) * 1000)
        exc_type, exc_value, exc_tb = sys.exc_info()

        error_msg = _failure_message(exc_value, exc_tb).replace("\n", f"\n{' ' * 6}")
        err = f"{exc_type.__name__}: {error_msg}" if error_msg else exc_type.__name__

        log_step(description, "failed", err, duration_ms=duration_ms, step_type=step_type)
        if not continue_on_failure:
            raise


def info(message: str, outcome: str = "passed"):
    """Log an informational step (no timing expected).

    Use this for status messages, tolerated conditions and results
    that don't represent timed actions.

    Args:
        message: Informational message to log
        outcome: "passed" or "failed" (default: "passed")
    """
    log_step(message, outcome, step_type="info")
