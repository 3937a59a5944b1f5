"""Turn synchronization for streaming chat responses.

A turn is one submitted message plus the reply the agent streams back. The UI
offers no direct completion event, only a "Stop" button that is rendered while
the reply is generated. Every wait in this module goes through two helpers:

- ``await_completion`` holds the appear/disappear policy for that button.
- ``poll_until`` holds bounded polling of the rendered reply text.
"""

import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from playwright.sync_api import Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from librechat_tests.config import Settings
from librechat_tests.step import step, info


ContentPattern = Union[str, re.Pattern]


class TurnError(Exception):
    """Base class for turn synchronization failures."""


class SetupError(TurnError):
    """The message input never became interactable."""


class TurnTimeoutError(TurnError):
    """The reply was still streaming when the turn timeout elapsed."""


class TurnInProgressError(TurnError):
    """A message was submitted while the previous turn was still being awaited."""


class ContentMismatchError(AssertionError):
    """The settled reply does not contain the expected content."""

    def __init__(self, pattern: ContentPattern, text: str):
        self.pattern = pattern
        self.text = text
        preview = text if len(text) <= 300 else text[:300] + "..."
        super().__init__(
            f"Response does not contain {describe_pattern(pattern)}, got: '{preview}'"
        )


@dataclass
class TurnResult:
    """Record of one submitted message."""
    message: str
    submitted_at: float
    finished_at: Optional[float] = None
    waited: bool = True
    indicator_seen: bool = False
    text: Optional[str] = None
    matched: Optional[str] = None


def find_match(text: str, pattern: ContentPattern) -> Optional[str]:
    """Return the part of ``text`` satisfying ``pattern``, or None.

    Strings are matched as plain substrings, compiled patterns with ``search``.
    """
    if isinstance(pattern, re.Pattern):
        match = pattern.search(text)
        return match.group(0) if match else None
    return pattern if pattern in text else None


def describe_pattern(pattern: ContentPattern) -> str:
    if isinstance(pattern, re.Pattern):
        flags = "i" if pattern.flags & re.IGNORECASE else ""
        return f"/{pattern.pattern}/{flags}"
    return f'"{pattern}"'


def truncate(message: str, limit: int = 80) -> str:
    return message[:limit] + "..." if len(message) > limit else message


def poll_until(
    probe: Callable[[], bool],
    timeout: int,
    interval: int,
    wait: Callable[[float], None],
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Call ``probe`` until it returns True or ``timeout`` ms have elapsed.

    The probe always runs at least once. ``wait`` receives milliseconds,
    normally ``page.wait_for_timeout``.
    """
    deadline = clock() + timeout / 1000
    while True:
        if probe():
            return True
        remaining_ms = (deadline - clock()) * 1000
        if remaining_ms <= 0:
            return False
        wait(min(interval, remaining_ms))


def await_completion(indicator: Locator, timeout: int, appear_timeout: int) -> bool:
    """Wait for an in-flight indicator to show up and then go away.

    Returns whether the indicator was seen at all. Not seeing it within
    ``appear_timeout`` is not an error: a fast reply can finish before the
    indicator is ever rendered. Once seen, it must disappear within
    ``timeout`` or ``TurnTimeoutError`` is raised.
    """
    try:
        indicator.wait_for(state="visible", timeout=appear_timeout)
    except PlaywrightTimeoutError:
        return False

    try:
        indicator.wait_for(state="hidden", timeout=timeout)
    except PlaywrightTimeoutError as e:
        raise TurnTimeoutError(
            f"Response still streaming after {timeout}ms (Stop button did not disappear)"
        ) from e
    return True


class TurnSynchronizer:
    """Sends messages into a conversation and blocks until each reply settles."""

    def __init__(
        self,
        page: Page,
        textbox: Locator,
        indicator: Locator,
        responses: Locator,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.page = page
        self.textbox = textbox
        self.indicator = indicator
        self.responses = responses
        self.clock = clock
        self.turns: list[TurnResult] = []
        self._in_flight: Optional[TurnResult] = None

        self.input_timeout = settings.input_timeout
        self.indicator_timeout = settings.indicator_timeout
        self.turn_timeout = settings.turn_timeout
        self.settle_delay = settings.settle_delay
        self.stable_polls = settings.stable_polls
        self.poll_interval = settings.poll_interval
        self.content_timeout = settings.content_timeout

    def latest_text(self) -> str:
        """Text of the most recent response region, empty if none is rendered."""
        if self.responses.count() == 0:
            return ""
        return self.responses.last.inner_text()

    def send(
        self,
        message: str,
        wait_for_response: bool = True,
        timeout: Optional[int] = None,
        check_content: Optional[ContentPattern] = None,
    ) -> TurnResult:
        """Submit ``message`` and, unless told not to, wait for the reply to settle.

        Args:
            message: Text to send, must not be blank
            wait_for_response: If False, return right after pressing Enter
            timeout: Max time (ms) for the reply to finish streaming
            check_content: Substring or compiled pattern the settled reply must contain

        Raises:
            SetupError: Message input not interactable within ``input_timeout``
            TurnTimeoutError: Reply still streaming after ``timeout``
            ContentMismatchError: Settled reply does not satisfy ``check_content``
        """
        if not message or not message.strip():
            raise ValueError("Message must not be empty")
        if timeout is None:
            timeout = self.turn_timeout
        elif timeout <= 0:
            raise ValueError(f"Turn timeout must be positive, got {timeout}ms")
        if self._in_flight is not None:
            raise TurnInProgressError(
                f"Previous turn still in flight: '{truncate(self._in_flight.message)}'"
            )

        with step(f"Send: {truncate(message)}"):
            try:
                self.textbox.wait_for(state="visible", timeout=self.input_timeout)
            except PlaywrightTimeoutError as e:
                raise SetupError(
                    f"Message input not ready after {self.input_timeout}ms"
                ) from e
            self.textbox.click()
            self.textbox.fill(message)
            self.textbox.press("Enter")

        turn = TurnResult(message=message, submitted_at=self.clock())
        self.turns.append(turn)

        if not wait_for_response:
            turn.waited = False
            turn.finished_at = self.clock()
            return turn

        self._in_flight = turn
        try:
            with step("Wait for AI response", step_type="wait"):
                turn.indicator_seen = await_completion(
                    self.indicator, timeout=timeout, appear_timeout=self.indicator_timeout
                )
            if not turn.indicator_seen:
                info("No Stop button detected, checking for response")

            self._settle(turn)

            if check_content is not None:
                with step(f"Verify response contains {describe_pattern(check_content)}"):
                    self._verify(turn, check_content)
        finally:
            turn.finished_at = self.clock()
            self._in_flight = None

        return turn

    def _settle(self, turn: TurnResult) -> None:
        stable = True
        with step("Wait for UI to settle", step_type="wait"):
            if self.settle_delay:
                self.page.wait_for_timeout(self.settle_delay)
            if self.stable_polls:
                stable = self._wait_for_stable_text(turn)
        if not stable:
            info(f"Response text still changing after {self.content_timeout}ms, continuing")

    def _wait_for_stable_text(self, turn: TurnResult) -> bool:
        unchanged = 0

        def probe() -> bool:
            nonlocal unchanged
            text = self.latest_text()
            if text == turn.text:
                unchanged += 1
            else:
                turn.text = text
                unchanged = 0
            return unchanged >= self.stable_polls

        return poll_until(
            probe,
            timeout=self.content_timeout,
            interval=self.poll_interval,
            wait=self.page.wait_for_timeout,
            clock=self.clock,
        )

    def _verify(self, turn: TurnResult, pattern: ContentPattern) -> None:
        def probe() -> bool:
            turn.text = self.latest_text()
            turn.matched = find_match(turn.text, pattern)
            return turn.matched is not None

        found = poll_until(
            probe,
            timeout=self.content_timeout,
            interval=self.poll_interval,
            wait=self.page.wait_for_timeout,
            clock=self.clock,
        )
        if not found:
            raise ContentMismatchError(pattern, turn.text or "")
