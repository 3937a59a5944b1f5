"""Test runner for LibreChat demo Playwright tests."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

import pytest

from librechat_tests.config import Settings, get_settings
from librechat_tests.plugin import ResultCollectorPlugin, set_current_plugin, TestEvent
from librechat_tests.output import JSONLWriter, generate_output_filename
from librechat_tests import console


class RunStatus(str, Enum):
    """Test run status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Summary of a test run."""
    run_id: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    total: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    skipped: int = 0
    duration_seconds: float = 0
    current_test: Optional[str] = None
    output_file: Optional[str] = None


def _print_event(event: TestEvent, run: RunSummary):
    """Print test event to console."""
    if event.event_type == "test_start":
        run.current_test = event.name
        if event.scenario:
            console.writeln(f"\n{console.label('SCENARIO:')} {console.info(event.scenario)}")
        else:
            console.writeln(f"\n{console.label('TEST:')} {console.info(event.name)}")

    elif event.event_type == "step":
        if event.step_type == "info" and event.step_name.startswith("STEP "):
            console.banner(event.step_name)
            return
        failed = event.outcome == "failed"
        icon = console.step_icon(event.outcome, event.step_type)
        duration = console.dim(f" ({event.duration_ms}ms)") if event.duration_ms else ""
        console.writeln(f"  [{icon}] {event.step_name}{duration}")
        if event.message and failed:
            console.writeln(f"{' ' * 6}{console.error(event.message)}")

    elif event.event_type == "test_end":
        if event.outcome == "skipped":
            run.skipped += 1
            run.current_test = None
            return
        run.total += 1
        if event.outcome == "passed":
            run.passed += 1
        elif event.outcome == "failed":
            run.failed += 1
        else:
            run.errors += 1
        status = console.outcome(event.outcome)
        duration = console.dim(f" ({event.duration_seconds:.2f}s)") if event.duration_seconds else ""
        console.writeln(f"  => {status}{duration}")
        if event.message:
            console.writeln(f"{' ' * 5}{console.error('Error:')} {event.message}")
        run.current_test = None

    elif event.event_type == "session_end":
        if event.message:
            console.writeln(f"\n{console.dim('Session: ' + event.message)}")


def build_pytest_args(
    settings: Settings,
    markers: Optional[List[str]] = None,
    headless: bool = True,
    scenarios: Optional[List[str]] = None,
) -> List[str]:
    """Assemble the pytest command line for a live run."""
    tests_dir = Path(__file__).parent / "tests"
    pytest_args = [
        str(tests_dir),
        "--live",
        "--browser", settings.browser,
    ]

    if markers:
        pytest_args.extend(["-m", " or ".join(markers)])
    if not headless:
        pytest_args.extend(["--headed", "--slowmo", str(settings.slow_mo)])
    if scenarios:
        pytest_args.extend(["--scenario", ",".join(scenarios)])
    return pytest_args


class TestRunner:
    """Orchestrates test execution."""

    __test__ = False

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self._active_runs: dict[str, RunSummary] = {}

    def create_run(self) -> str:
        """Create a new test run and return its ID."""
        run_id = str(uuid.uuid4())
        self._active_runs[run_id] = RunSummary(
            run_id=run_id,
            status=RunStatus.PENDING,
            started_at=datetime.now(),
        )
        return run_id

    def get_run(self, run_id: str) -> Optional[RunSummary]:
        """Get a test run by ID."""
        return self._active_runs.get(run_id)

    def run_tests(
        self,
        run_id: str,
        markers: Optional[List[str]] = None,
        headless: bool = True,
        output_path: Optional[Path] = None,
        scenarios: Optional[List[str]] = None,
    ) -> RunSummary:
        """Run tests and return summary."""
        run = self._active_runs.get(run_id)
        if not run:
            raise ValueError(f"Test run {run_id} not found")

        run.status = RunStatus.RUNNING
        run.started_at = datetime.now()

        if output_path is None:
            output_path = self.settings.reports_path / generate_output_filename()
        run.output_file = str(output_path)

        pytest_args = build_pytest_args(self.settings, markers, headless, scenarios)

        with JSONLWriter(output_path) as writer:
            def on_event(event: TestEvent):
                writer.write_event(event)
                _print_event(event, run)

            plugin = ResultCollectorPlugin(on_event=on_event)
            set_current_plugin(plugin)
            try:
                exit_code = pytest.main(pytest_args, plugins=[plugin])
            finally:
                set_current_plugin(None)

        run.completed_at = datetime.now()
        run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
        run.status = RunStatus.COMPLETED if exit_code == 0 else RunStatus.FAILED
        return run


def run_tests_sync(
    markers: Optional[List[str]] = None,
    headless: bool = True,
    output_path: Optional[Path] = None,
    scenarios: Optional[List[str]] = None,
) -> RunSummary:
    """Synchronous helper to run tests."""
    runner = TestRunner()
    run_id = runner.create_run()
    return runner.run_tests(
        run_id=run_id,
        markers=markers,
        headless=headless,
        output_path=output_path,
        scenarios=scenarios,
    )
