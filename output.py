"""JSONL event log for test runs."""

import json
from pathlib import Path
from typing import Iterator, TextIO, Optional
from datetime import datetime

from librechat_tests.plugin import TestEvent


class JSONLWriter:
    """Writes test events to JSONL format in real-time."""

    def __init__(self, output_path: Path):
        self.output_path = output_path
        self._file: Optional[TextIO] = None

    def __enter__(self):
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.output_path, 'w', encoding='utf-8')
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._file:
            self._file.close()
            self._file = None

    def write_event(self, event: TestEvent):
        """Write a single event as a JSON line."""
        if self._file:
            json_line = json.dumps(event.to_dict(), ensure_ascii=False)
            self._file.write(json_line + '\n')
            self._file.flush()  # a hung turn must not lose the steps before it


def read_events(input_path: Path) -> Iterator[dict]:
    """Yield events from a JSONL run log, skipping blank lines.

    Raises ValueError naming the line number for malformed JSON.
    """
    with open(input_path, encoding='utf-8') as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{input_path}:{lineno}: invalid JSON ({e.msg})") from e


def generate_output_filename(prefix: str = "test_run") -> str:
    """Generate timestamped output filename.

    Args:
        prefix: Filename prefix (default: 'test_run')

    Returns:
        Filename with Unix timestamp, e.g., 'test_run_1706367000.jsonl'
    """
    timestamp = int(datetime.now().timestamp())
    return f"{prefix}_{timestamp}.jsonl"
