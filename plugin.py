from collections import Counter
from dataclasses import dataclass, field, asdict
from typing import Callable, Optional, List
from datetime import datetime
import time
import pytest


IGNORED_MARKERS = ("parametrize", "usefixtures", "skip", "skipif")


@dataclass
class TestEvent:
    __test__ = False

    event_type: str
    timestamp: str = field(
        default_factory=lambda: datetime.now().isoformat())
    nodeid: str = None
    name: str = None
    scenario: str = None
    outcome: str = None
    duration_seconds: float = None
    duration_ms: int = None
    message: str = None
    step_name: str = None
    markers: List[str] = None
    step_type: str = None  # "action", "info", or "wait"

    def to_dict(self):
        return {k: v for k, v in asdict(self).items() if v is not None}


def _scenario_id(item) -> Optional[str]:
    callspec = getattr(item, "callspec", None)
    if callspec is None or "scenario" not in callspec.params:
        return None
    return callspec.params["scenario"].id


def _report_outcome(call) -> str:
    """Classify a failed phase: test body failures vs. broken setup."""
    if call.excinfo.errisinstance(pytest.skip.Exception):
        return "skipped"
    if call.when == "call":
        return "failed"
    # Login, agent selection or page fixtures broke before or after the test body
    return "error"


class ResultCollectorPlugin:
    """Pytest plugin that turns a live run into a stream of TestEvents.

    Steps logged from inside a test are attributed to the test currently
    running; ``counts`` tallies final outcomes for the session_end event.
    """

    def __init__(self, on_event: Callable[[TestEvent], None] = None):
        self.on_event = on_event
        self.results: List[TestEvent] = []
        self.counts: Counter = Counter()
        self._started_at: float = None
        self._nodeid: str = None
        self._name: str = None
        self._scenario: str = None

    def _emit(self, event: TestEvent):
        self.results.append(event)
        if self.on_event:
            self.on_event(event)

    def _elapsed(self) -> Optional[float]:
        if not self._started_at:
            return None
        return round(time.time() - self._started_at, 3)

    def emit_step(self, name: str, outcome: str, message: str = None, duration_ms: int = None, step_type: str = "action"):
        self._emit(TestEvent(
            "step",
            nodeid=self._nodeid,
            name=self._name,
            scenario=self._scenario,
            step_name=name,
            outcome=outcome,
            message=message,
            duration_ms=duration_ms,
            step_type=step_type,
        ))

    def _end_test(self, item, outcome: str, message: str = None):
        self.counts[outcome] += 1
        self._emit(TestEvent(
            "test_end",
            nodeid=item.nodeid,
            name=item.name,
            scenario=_scenario_id(item),
            outcome=outcome,
            duration_seconds=self._elapsed(),
            message=message,
        ))
        self._nodeid = self._name = self._scenario = None

    def pytest_sessionstart(self, session):
        self._emit(TestEvent("session_start"))

    def pytest_runtest_logstart(self, nodeid, location):
        self._started_at = time.time()
        self._nodeid = nodeid
        self._name = nodeid.split("::")[-1]

    def pytest_runtest_setup(self, item):
        self._scenario = _scenario_id(item)
        markers = sorted({
            mark.name for mark in item.iter_markers()
            if mark.name not in IGNORED_MARKERS
        })
        self._emit(TestEvent(
            "test_start",
            nodeid=item.nodeid,
            name=item.name,
            scenario=self._scenario,
            markers=markers or None,
        ))

    def pytest_runtest_makereport(self, item, call):
        if call.excinfo:
            message = str(call.excinfo.value).replace("\n", "\n" + " " * 5)
            self._end_test(item, _report_outcome(call), message)
        elif call.when == "call":
            self._end_test(item, "passed")

    def pytest_sessionfinish(self, session, exitstatus):
        summary = ", ".join(f"{n} {outcome}" for outcome, n in sorted(self.counts.items()))
        self._emit(TestEvent(
            "session_end",
            outcome="passed" if exitstatus == 0 else "failed",
            message=summary or "no tests ran",
        ))


# For step logging within tests
_current_plugin: Optional[ResultCollectorPlugin] = None


def set_current_plugin(plugin: Optional[ResultCollectorPlugin]):
    global _current_plugin
    _current_plugin = plugin


def log_step(name: str, outcome: str = "passed", message: str = None, duration_ms: int = None, step_type: str = "action"):
    """Log a step of the running test.

    Args:
        name: Step description
        outcome: "passed" or "failed"
        message: Error message of a failed step
        duration_ms: Duration in milliseconds (None for info steps)
        step_type: "action", "info" (no timing) or "wait" (turn synchronization)

    Outside a runner session (plain ``pytest`` runs) steps are not recorded.
    """
    if _current_plugin:
        _current_plugin.emit_step(name, outcome, message, duration_ms, step_type)
