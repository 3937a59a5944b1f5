"""Demo scenarios loaded from JSON fixtures.

Each fixture file describes one scripted conversation: the agent to talk to,
the ordered turns with their expected content, and the checks run once the
conversation is over. File-level ``default_step`` values are merged into every
step, so a step only lists what differs.
"""

import json
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def compile_pattern(source: str, flags: str = "i") -> re.Pattern:
    """Compile a fixture pattern; ``flags`` uses JS-style letters (i, m, s)."""
    value = 0
    for letter in flags:
        if letter == "i":
            value |= re.IGNORECASE
        elif letter == "m":
            value |= re.MULTILINE
        elif letter == "s":
            value |= re.DOTALL
        else:
            raise ValueError(f"Unsupported pattern flag '{letter}' in /{source}/{flags}")
    return re.compile(source, value)


class FollowUp(BaseModel):
    """Extra turn sent only when the previous reply matches ``when``."""
    when: str
    message: str
    check_content: Optional[str] = None
    flags: str = "i"

    @property
    def condition(self) -> re.Pattern:
        return compile_pattern(self.when, self.flags)

    @property
    def pattern(self) -> Optional[re.Pattern]:
        return compile_pattern(self.check_content, self.flags) if self.check_content else None


class ScenarioStep(BaseModel):
    """One scripted turn."""
    id: str
    title: str
    message: str
    timeout: Optional[int] = Field(default=None, gt=0)
    wait_for_response: bool = True
    check_content: Optional[str] = None
    flags: str = "i"
    pause_after: int = Field(default=0, ge=0)
    follow_up: Optional[FollowUp] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Step message must not be empty")
        return value

    @model_validator(mode="after")
    def patterns_compile(self):
        if self.check_content:
            compile_pattern(self.check_content, self.flags)
        return self

    @property
    def pattern(self) -> Optional[re.Pattern]:
        return compile_pattern(self.check_content, self.flags) if self.check_content else None


class Verification(BaseModel):
    """Page-wide content check run after the last step."""
    name: str
    pattern: str
    flags: str = "i"

    @property
    def regex(self) -> re.Pattern:
        return compile_pattern(self.pattern, self.flags)

    def found_in(self, text: str) -> bool:
        return self.regex.search(text) is not None


class Scenario(BaseModel):
    """A scripted demo conversation."""
    id: str
    description: str = ""
    markers: list[str] = Field(default_factory=list)
    agent: Optional[str] = None
    agents_endpoint: bool = False
    steps: list[ScenarioStep]
    verifications: list[Verification] = Field(default_factory=list)
    min_verified: Optional[int] = None
    min_messages: Optional[int] = None
    screenshot: Optional[str] = None
    source: Optional[str] = None

    @model_validator(mode="after")
    def check_consistency(self):
        if not self.steps:
            raise ValueError(f"Scenario {self.id} has no steps")
        ids = [s.id for s in self.steps]
        duplicates = {i for i in ids if ids.count(i) > 1}
        if duplicates:
            raise ValueError(f"Scenario {self.id} has duplicate step ids: {sorted(duplicates)}")
        if self.min_verified is not None and self.min_verified > len(self.verifications):
            raise ValueError(
                f"Scenario {self.id} requires {self.min_verified} verifications "
                f"but defines only {len(self.verifications)}"
            )
        if self.agent and self.agents_endpoint:
            raise ValueError(f"Scenario {self.id} sets both agent and agents_endpoint")
        return self

    @property
    def total_timeout(self) -> int:
        """Upper bound (ms) for all turn timeouts of the scenario."""
        return sum(s.timeout or 0 for s in self.steps)


def load_scenario(json_file: Path) -> Scenario:
    with open(json_file, encoding="utf-8") as f:
        data = json.load(f)

    default_step = data.pop("default_step", {})
    data["steps"] = [deep_merge(default_step, s) for s in data.get("steps", [])]
    data.setdefault("source", json_file.name)
    return Scenario.model_validate(data)


def load_scenarios(fixtures_path: Path) -> list[Scenario]:
    """Load all JSON scenario files from the fixtures directory, sorted by file name."""
    scenarios = [load_scenario(f) for f in sorted(fixtures_path.glob("*.json"))]
    ids = [s.id for s in scenarios]
    duplicates = {i for i in ids if ids.count(i) > 1}
    if duplicates:
        raise ValueError(f"Duplicate scenario ids in {fixtures_path}: {sorted(duplicates)}")
    return scenarios
