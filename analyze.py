"""Analysis of JSONL run logs: summary, failure categories and turn timings."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

from librechat_tests import console
from librechat_tests.output import read_events


RESPONSE_WAIT_STEP = "Wait for AI response"
MISSING_INDICATOR_STEP = "No Stop button detected"
SHORT_OUTCOMES = {"passed": "PASS", "failed": "FAIL"}


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class StepResult:
    """Individual step result."""
    step_name: str
    outcome: str
    duration_ms: Optional[int] = None
    message: Optional[str] = None
    timestamp: Optional[str] = None
    step_type: Optional[str] = None  # "action", "info" or "wait"


@dataclass
class TestResult:
    """Individual test result with steps."""
    __test__ = False

    nodeid: str
    name: str
    outcome: str
    duration_seconds: Optional[float] = None
    message: Optional[str] = None
    markers: List[str] = field(default_factory=list)
    scenario: Optional[str] = None
    steps: List[StepResult] = field(default_factory=list)

    @property
    def response_waits(self) -> List[int]:
        """Durations of every awaited turn, in order."""
        return [
            s.duration_ms for s in self.steps
            if s.step_name == RESPONSE_WAIT_STEP and s.duration_ms is not None
        ]

    @property
    def first_failed_step(self) -> Optional[StepResult]:
        for step in self.steps:
            if step.outcome == "failed" and step.step_type != "info":
                return step
        return None


@dataclass
class AnalysisResult:
    """Complete analysis of a test run."""

    # === Summary Statistics ===
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    error_tests: int = 0
    skipped_tests: int = 0

    total_steps: int = 0
    passed_steps: int = 0
    failed_steps: int = 0

    # === Timing ===
    session_start: Optional[str] = None
    session_end: Optional[str] = None
    total_duration_seconds: float = 0.0

    # === Turn Metrics ===
    turns_awaited: int = 0
    missing_indicator_turns: int = 0
    avg_response_wait_ms: float = 0.0
    slowest_turns: List[Tuple[str, int]] = field(default_factory=list)
    slowest_tests: List[Tuple[str, float]] = field(default_factory=list)

    # === Failure Analysis ===
    failure_categories: Dict[str, List[str]] = field(default_factory=dict)

    # === Detailed Results ===
    tests: List[TestResult] = field(default_factory=list)
    tests_by_marker: Dict[str, List[TestResult]] = field(default_factory=dict)

    source_file: Optional[str] = None

    @property
    def evaluated_tests(self) -> int:
        return self.total_tests - self.skipped_tests

    @property
    def pass_rate(self) -> float:
        """Test pass rate as percentage of non-skipped tests."""
        if self.evaluated_tests == 0:
            return 0.0
        return (self.passed_tests / self.evaluated_tests) * 100

    @property
    def step_pass_rate(self) -> float:
        if self.total_steps == 0:
            return 0.0
        return (self.passed_steps / self.total_steps) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "summary": {
                "total_tests": self.total_tests,
                "passed_tests": self.passed_tests,
                "failed_tests": self.failed_tests,
                "error_tests": self.error_tests,
                "skipped_tests": self.skipped_tests,
                "pass_rate": round(self.pass_rate, 2),
                "total_steps": self.total_steps,
                "failed_steps": self.failed_steps,
                "step_pass_rate": round(self.step_pass_rate, 2),
            },
            "timing": {
                "session_start": self.session_start,
                "session_end": self.session_end,
                "total_duration_seconds": self.total_duration_seconds,
            },
            "turns": {
                "awaited": self.turns_awaited,
                "missing_indicator": self.missing_indicator_turns,
                "avg_response_wait_ms": round(self.avg_response_wait_ms, 1),
                "slowest": [{"test": n, "duration_ms": d} for n, d in self.slowest_turns],
            },
            "failure_categories": self.failure_categories,
            "tests": [
                {
                    "name": t.name,
                    "outcome": t.outcome,
                    "duration_seconds": t.duration_seconds,
                    "message": t.message,
                    "markers": t.markers,
                    "failed_steps": [s.step_name for s in t.steps if s.outcome == "failed"],
                }
                for t in self.tests
            ],
            "scenarios": {
                t.scenario: {
                    "outcome": t.outcome,
                    "turns": len(t.response_waits),
                    "response_wait_ms": sum(t.response_waits),
                }
                for t in self.tests if t.scenario
            },
            "source_file": self.source_file,
        }


# =============================================================================
# Analysis Functions
# =============================================================================

def categorize_failure(message: Optional[str]) -> str:
    """Map a step failure message onto the failure taxonomy."""
    if not message:
        return "Unknown"

    if message.startswith("SetupError"):
        return "Setup"
    if message.startswith("TurnTimeoutError"):
        return "Timeout"
    if message.startswith("ContentMismatchError"):
        return "Content Mismatch"
    if message.startswith(("SessionError", "TurnInProgressError")):
        return "Session"
    if message.startswith("AgentNotFoundError"):
        return "Agent"

    message_lower = message.lower()
    if any(kw in message_lower for kw in ["timeout", "timed out", "exceeded"]):
        return "Timeout"
    if message.startswith("AssertionError"):
        return "Assertion Failed"
    if any(kw in message_lower for kw in ["net::", "connection", "econnrefused"]):
        return "Network"
    return "Other"


def _calculate_turn_metrics(result: AnalysisResult) -> None:
    waits: List[Tuple[str, int]] = []
    for test in result.tests:
        waits.extend((test.name, duration) for duration in test.response_waits)
        result.missing_indicator_turns += sum(
            1 for s in test.steps if s.step_name.startswith(MISSING_INDICATOR_STEP)
        )

    result.turns_awaited = len(waits)
    if waits:
        result.avg_response_wait_ms = sum(d for _, d in waits) / len(waits)
        result.slowest_turns = sorted(waits, key=lambda x: x[1], reverse=True)[:5]

    durations = [(t.name, t.duration_seconds) for t in result.tests if t.duration_seconds]
    result.slowest_tests = sorted(durations, key=lambda x: x[1], reverse=True)[:5]


def _analyze_failures(result: AnalysisResult) -> None:
    categories: Dict[str, List[str]] = defaultdict(list)

    for test in result.tests:
        if test.outcome not in ("failed", "error"):
            continue

        # The innermost step fails first and carries the original exception
        step = test.first_failed_step
        if step:
            categories[categorize_failure(step.message)].append(f"{test.name} > {step.step_name}")
        else:
            categories[categorize_failure(test.message)].append(test.name)

    result.failure_categories = dict(categories)


def analyze_jsonl(file_path: Path) -> AnalysisResult:
    """Analyze a JSONL run log.

    Args:
        file_path: Path to the JSONL file

    Returns:
        AnalysisResult with summary, turn metrics and failure categories
    """
    result = AnalysisResult()
    result.source_file = str(file_path)
    current_test: Optional[TestResult] = None
    tests_by_nodeid: Dict[str, TestResult] = {}
    marker_groups: Dict[str, List[TestResult]] = defaultdict(list)

    for event in read_events(file_path):
        event_type = event.get("event_type")

        if event_type == "session_start":
            result.session_start = event.get("timestamp")

        elif event_type == "session_end":
            result.session_end = event.get("timestamp")
            if result.session_start and result.session_end:
                start = datetime.fromisoformat(result.session_start)
                end = datetime.fromisoformat(result.session_end)
                result.total_duration_seconds = (end - start).total_seconds()

        elif event_type == "test_start":
            nodeid = event.get("nodeid", "")
            current_test = TestResult(
                nodeid=nodeid,
                name=event.get("name", ""),
                outcome="unknown",
                markers=event.get("markers", []) or [],
                scenario=event.get("scenario"),
            )
            tests_by_nodeid[nodeid] = current_test

        elif event_type == "test_end":
            nodeid = event.get("nodeid", "")
            outcome = event.get("outcome", "unknown")

            test = tests_by_nodeid.get(nodeid)
            if test is None:
                # Skipped during setup: no test_start was emitted
                test = TestResult(
                    nodeid=nodeid, name=event.get("name", ""), outcome=outcome,
                    scenario=event.get("scenario"),
                )
            test.outcome = outcome
            test.duration_seconds = event.get("duration_seconds")
            test.message = event.get("message")

            result.total_tests += 1
            if outcome == "passed":
                result.passed_tests += 1
            elif outcome == "failed":
                result.failed_tests += 1
            elif outcome == "error":
                result.error_tests += 1
            elif outcome == "skipped":
                result.skipped_tests += 1

            for marker in test.markers:
                marker_groups[marker].append(test)

            result.tests.append(test)
            current_test = None

        elif event_type == "step":
            step = StepResult(
                step_name=event.get("step_name", ""),
                outcome=event.get("outcome", "unknown"),
                duration_ms=event.get("duration_ms"),
                message=event.get("message"),
                timestamp=event.get("timestamp"),
                step_type=event.get("step_type"),
            )

            result.total_steps += 1
            if step.outcome == "passed":
                result.passed_steps += 1
            elif step.outcome == "failed":
                result.failed_steps += 1

            nodeid = event.get("nodeid")
            if nodeid and nodeid in tests_by_nodeid:
                tests_by_nodeid[nodeid].steps.append(step)
            elif current_test:
                current_test.steps.append(step)

    result.tests_by_marker = dict(marker_groups)

    _calculate_turn_metrics(result)
    _analyze_failures(result)

    return result


# =============================================================================
# Formatting Helpers
# =============================================================================

def _format_outcome(outcome: str) -> str:
    return console.outcome(outcome, SHORT_OUTCOMES.get(outcome))


def _format_percentage(value: float, good: float = 90, warn: float = 70) -> str:
    """Format percentage with color based on thresholds."""
    formatted = f"{value:.1f}%"
    if value >= good:
        return console.success(formatted)
    elif value >= warn:
        return console.warn(formatted)
    return console.error(formatted)


def format_duration(seconds: float) -> str:
    """Format duration in human-readable form."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    mins = int(seconds // 60)
    secs = seconds % 60
    return f"{mins}m {secs:.0f}s"


# =============================================================================
# Print Functions
# =============================================================================

def print_summary(analysis: AnalysisResult) -> None:
    """Print run summary with colors."""
    print("\n" + console.bold("=" * 60))
    print(console.bold("TEST RUN ANALYSIS"))
    print(console.bold("=" * 60))

    if analysis.source_file:
        print(f"\n{console.label('Source:')} {console.dim(analysis.source_file)}")
    print(f"{console.label('Session:')} {analysis.session_start or 'N/A'}")
    print(f"{console.label('Duration:')} {format_duration(analysis.total_duration_seconds)}")

    failed = analysis.failed_tests
    errors = analysis.error_tests
    print(f"\n{console.bold('--- Test Summary ---')}")
    print(f"  Total:      {analysis.total_tests}")
    print(f"  Passed:     {console.success(str(analysis.passed_tests))}")
    print(f"  Failed:     {console.error(str(failed)) if failed else '0'}")
    print(f"  Errors:     {console.warn(str(errors)) if errors else '0'}")
    print(f"  Skipped:    {console.dim(str(analysis.skipped_tests))}")
    print(f"  Pass Rate:  {_format_percentage(analysis.pass_rate)} ({analysis.passed_tests}/{analysis.evaluated_tests} evaluated)")

    if analysis.total_steps > 0:
        print(f"\n{console.bold('--- Step Summary ---')}")
        print(f"  Total:      {analysis.total_steps}")
        print(f"  Failed:     {console.error(str(analysis.failed_steps)) if analysis.failed_steps else '0'}")
        print(f"  Pass Rate:  {_format_percentage(analysis.step_pass_rate)}")

    if analysis.turns_awaited:
        print(f"\n{console.bold('--- Turns ---')}")
        print(f"  Awaited:            {analysis.turns_awaited}")
        print(f"  Avg response wait:  {format_duration(analysis.avg_response_wait_ms / 1000)}")
        print(f"  No Stop button:     {analysis.missing_indicator_turns}")

    print(console.bold("=" * 60))


def print_performance(analysis: AnalysisResult) -> None:
    print(f"\n{console.bold('--- Performance ---')}")

    if analysis.slowest_turns:
        print(f"\n{console.label('Slowest Responses:')}")
        for name, duration_ms in analysis.slowest_turns:
            print(f"  {console.warn(format_duration(duration_ms / 1000)):>8}  {name}")

    if analysis.slowest_tests:
        print(f"\n{console.label('Slowest Tests:')}")
        for name, duration in analysis.slowest_tests:
            print(f"  {console.warn(format_duration(duration)):>8}  {name}")


def print_failures(analysis: AnalysisResult) -> None:
    """Print failures grouped by category, then per test."""
    failed_tests = [t for t in analysis.tests if t.outcome in ("failed", "error")]

    if not failed_tests:
        print(f"\n{console.success('No failures to report.')}")
        return

    print(f"\n{console.bold('--- Failure Analysis ---')}")
    print(f"Total failures: {console.error(str(len(failed_tests)))}")

    print(f"\n{console.label('By Category:')}")
    for category, entries in sorted(analysis.failure_categories.items(), key=lambda x: -len(x[1])):
        print(f"  {console.error(category)}: {len(entries)}")
        for entry in entries:
            print(f"    - {entry}")

    print(f"\n{console.label('Failed Tests:')}")
    for test in failed_tests:
        print(f"\n  {_format_outcome(test.outcome)}: {test.name}")
        if test.message:
            print(f"    Error: {console.dim(test.message)}")
        for step in test.steps:
            if step.outcome == "failed":
                print(f"      - {step.step_name}")
                if step.message:
                    print(f"        {console.dim(step.message)}")


def print_steps(analysis: AnalysisResult) -> None:
    """Print full step details for each test."""
    print(f"\n{console.bold('--- Step Details ---')}")

    for test in analysis.tests:
        duration_str = f" ({format_duration(test.duration_seconds)})" if test.duration_seconds else ""
        print(f"\n[{_format_outcome(test.outcome)}] {test.name}{duration_str}")

        if not test.steps:
            print(f"    {console.dim('(no steps)')}")
            continue

        for step in test.steps:
            icon = console.step_icon(step.outcome, step.step_type)
            tag = console.dim(f" [{step.step_type}]") if step.step_type in ("info", "wait") else ""
            dur = f" ({step.duration_ms}ms)" if step.duration_ms and step.step_type != "info" else ""
            print(f"    [{icon}] {step.step_name}{tag}{console.dim(dur)}")
            if step.message and step.outcome == "failed":
                msg = step.message[:80] + "..." if len(step.message) > 80 else step.message
                print(f"        {console.dim(msg)}")


def print_by_marker(analysis: AnalysisResult) -> None:
    """Print results grouped by pytest marker."""
    if not analysis.tests_by_marker:
        print(f"\n{console.dim('No marker data available.')}")
        return

    print(f"\n{console.bold('--- Results by Marker ---')}")

    for marker, tests in sorted(analysis.tests_by_marker.items()):
        passed = sum(1 for t in tests if t.outcome == "passed")
        total = len(tests)
        rate = (passed / total * 100) if total > 0 else 0
        print(f"\n  {console.label('@' + marker)}: {passed}/{total} passed ({_format_percentage(rate)})")

        for test in tests:
            if test.outcome in ("failed", "error"):
                print(f"    {_format_outcome(test.outcome)}: {test.name}")


def print_scenarios(analysis: AnalysisResult) -> None:
    """Print one line per demo scenario with its turn timings."""
    scenario_tests = [t for t in analysis.tests if t.scenario]
    if not scenario_tests:
        print(f"\n{console.dim('No scenario runs in this log.')}")
        return

    print(f"\n{console.bold('--- Scenarios ---')}")

    for test in scenario_tests:
        waits = test.response_waits
        timing = ""
        if waits:
            timing = console.dim(
                f" {len(waits)} turns, {format_duration(sum(waits) / 1000)} waiting,"
                f" slowest {format_duration(max(waits) / 1000)}"
            )
        print(f"\n  [{_format_outcome(test.outcome)}] {console.label(test.scenario)}{timing}")

        failed = test.first_failed_step
        if failed:
            print(f"    {categorize_failure(failed.message)} at: {failed.step_name}")
