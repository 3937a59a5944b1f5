"""Page object for LibreChat Playwright interactions."""
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel
from playwright.sync_api import Page, Locator
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from librechat_tests.config import Settings
from librechat_tests.step import step, info

from .turn import ContentPattern, TurnResult, TurnSynchronizer


class SessionError(Exception):
    """Demo user could not be logged in, even after registering."""


class AgentNotFoundError(Exception):
    """The requested agent is not offered in the model selector."""


class DemoUser(BaseModel):
    """Credentials of the simulated user."""
    email: str
    password: str
    name: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "DemoUser":
        return cls(
            email=settings.demo_user_email,
            password=settings.demo_user_password,
            name=settings.demo_user_name,
        )


class LibreChatSelectors:
    """CSS selectors for LibreChat elements."""

    # Auth forms
    NAME_INPUT = 'input[name="name"]'
    EMAIL_INPUT = 'input[name="email"]'
    PASSWORD_INPUT = 'input[name="password"]'
    CONFIRM_PASSWORD_INPUT = 'input[name="confirm_password"]'
    SUBMIT_BUTTON = 'button[type="submit"]'
    TOS_ACCEPT_BUTTON = (
        'button:has-text("Accept"), button:has-text("Akzeptieren"), button:has-text("I Agree")'
    )

    # Conversation
    MESSAGE_INPUT = 'form textarea, form input[type="text"]'
    STOP_BUTTON = 'button:has-text("Stop")'
    MESSAGE_CONTENT = '[class*="markdown"], [data-testid*="message"]'

    # Model / agent selection
    MODEL_SELECTOR_BUTTON = (
        'button:has-text("gpt"), button:has-text("GPT"), '
        'button:has-text("KI-Referent"), button[id^=":r"]'
    )
    MY_AGENTS_OPTION = '[role="option"]:has-text("My Agents")'

    # URLs
    CONVERSATION_URL = re.compile(r"/c/")
    ENDPOINT_BUTTON_TEXT = re.compile(r"gpt-|claude-|gemini|My Agents")


class LibreChatPage:
    """Page object for driving a LibreChat conversation."""

    def __init__(self, page: Page, settings: Settings):
        self.page = page
        self.settings = settings
        self.selectors = LibreChatSelectors
        self.synchronizer = TurnSynchronizer(
            page,
            textbox=self.message_input,
            indicator=self.stop_button,
            responses=self.message_contents,
            settings=settings,
        )

    # === Locators ===
    @property
    def message_input(self) -> Locator:
        return self.page.locator(self.selectors.MESSAGE_INPUT).first

    @property
    def stop_button(self) -> Locator:
        return self.page.locator(self.selectors.STOP_BUTTON).first

    @property
    def message_contents(self) -> Locator:
        return self.page.locator(self.selectors.MESSAGE_CONTENT)

    @property
    def latest_message(self) -> Locator:
        return self.message_contents.last

    @property
    def model_selector_button(self) -> Locator:
        return self.page.locator(self.selectors.MODEL_SELECTOR_BUTTON).first

    @property
    def endpoint_button(self) -> Locator:
        return self.page.locator("button").filter(has_text=self.selectors.ENDPOINT_BUTTON_TEXT).first

    @property
    def my_agents_option(self) -> Locator:
        return self.page.locator(self.selectors.MY_AGENTS_OPTION)

    @property
    def turns(self) -> list[TurnResult]:
        return self.synchronizer.turns

    # === Getters ===
    def latest_response_text(self) -> str:
        return self.synchronizer.latest_text()

    def message_count(self) -> int:
        return self.message_contents.count()

    def content(self) -> str:
        return self.page.content()

    # === Session ===
    def login(self, user: DemoUser) -> None:
        """Log in and wait for the conversation view.

        Raises PlaywrightTimeoutError when the redirect to ``/c/`` never happens.
        """
        timeout = self.settings.navigation_timeout
        self.page.goto(self.settings.login_url, timeout=timeout)
        self.page.fill(self.selectors.EMAIL_INPUT, user.email)
        self.page.fill(self.selectors.PASSWORD_INPUT, user.password)
        self.page.click(self.selectors.SUBMIT_BUTTON)
        self._accept_terms()
        self.page.wait_for_url(self.selectors.CONVERSATION_URL, timeout=timeout)

    def _accept_terms(self) -> None:
        try:
            self.page.locator(self.selectors.TOS_ACCEPT_BUTTON).first.click(timeout=3000)
        except PlaywrightTimeoutError:
            return
        info("Accepted terms of service")

    def register(self, user: DemoUser) -> None:
        self.page.goto(self.settings.register_url, timeout=self.settings.navigation_timeout)
        self.page.fill(self.selectors.NAME_INPUT, user.name or user.email)
        self.page.fill(self.selectors.EMAIL_INPUT, user.email)
        self.page.fill(self.selectors.PASSWORD_INPUT, user.password)
        self.page.fill(self.selectors.CONFIRM_PASSWORD_INPUT, user.password)
        self.page.click(self.selectors.SUBMIT_BUTTON)
        self.page.wait_for_timeout(self.settings.registration_delay)

    def has_session(self) -> bool:
        """Whether the browser already shows a logged-in conversation view.

        LibreChat sends unauthenticated visitors of ``/c/new`` back to the
        login page, so a visible message input on a ``/c/`` URL means the
        session is live.
        """
        try:
            self.page.goto(self.settings.new_chat_url, timeout=self.settings.navigation_timeout)
            self.message_input.wait_for(state="visible", timeout=self.settings.input_timeout)
        except PlaywrightTimeoutError:
            return False
        return bool(self.selectors.CONVERSATION_URL.search(self.page.url))

    def ensure_session(self, user: DemoUser, max_attempts: Optional[int] = None) -> int:
        """Log in, registering the user between attempts when login fails.

        Returns the number of login attempts used, 0 when the page was
        already authenticated.

        Raises:
            SessionError: All ``max_attempts`` login attempts failed
        """
        if max_attempts is None:
            max_attempts = self.settings.max_login_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        if self.has_session():
            info(f"Already logged in, reusing session of {user.email}")
            return 0

        last_error = None
        for attempt in range(1, max_attempts + 1):
            try:
                with step(f"Log in as {user.email} (attempt {attempt}/{max_attempts})"):
                    self.login(user)
                return attempt
            except PlaywrightTimeoutError as e:
                last_error = e
            if attempt < max_attempts:
                info(f"Demo user {user.email} could not log in, registering")
                try:
                    with step(f"Register demo user {user.email}"):
                        self.register(user)
                except PlaywrightTimeoutError as e:
                    last_error = e
        raise SessionError(
            f"Could not log in as {user.email} after {max_attempts} attempts: {last_error}"
        )

    # === Navigation ===
    def new_conversation(self) -> None:
        with step("Open new conversation"):
            self.page.goto(self.settings.new_chat_url, timeout=self.settings.navigation_timeout)
            self.page.wait_for_timeout(1000)

    # === Agent selection ===
    def select_agent(self, name: str) -> None:
        """Pick a named agent through the model selector.

        Raises:
            AgentNotFoundError: Agent not offered; a diagnostic screenshot is saved
        """
        with step(f"Select {name} agent"):
            self.model_selector_button.wait_for(state="visible", timeout=10000)
            self.model_selector_button.click()
            self.page.wait_for_timeout(1000)

            my_agents = self.page.get_by_text("My Agents", exact=True)
            if my_agents.count() > 0:
                my_agents.first.click()
                info("Opened My Agents")
                self.page.wait_for_timeout(1500)

            agent_option = self.page.get_by_text(name, exact=True)
            found = agent_option.count()
            info(f"Found {found} {name} options")

            if not found:
                path = self.screenshot("agent-list-debug.png", full_page=False)
                raise AgentNotFoundError(f"{name} agent not found. Check {path}")

            agent_option.first.click(timeout=5000)
            self.page.wait_for_timeout(1500)

    def select_agents_endpoint(self) -> bool:
        """Switch the conversation to the agents endpoint if the selector allows it.

        Returns False, keeping the default endpoint, when the selector or the
        "My Agents" option cannot be found.
        """
        try:
            with step("Select Agents endpoint"):
                self.endpoint_button.click(timeout=5000)
                self.page.wait_for_timeout(500)
                self.my_agents_option.click(timeout=5000)
                self.page.wait_for_timeout(1000)
        except PlaywrightTimeoutError:
            info("Could not select Agents endpoint, using default")
            return False
        return True

    # === Actions ===
    def send_message(
        self,
        message: str,
        wait_for_response: bool = True,
        timeout: Optional[int] = None,
        check_content: Optional[ContentPattern] = None,
    ) -> TurnResult:
        """Send a message and wait for the reply (see ``TurnSynchronizer.send``)."""
        return self.synchronizer.send(
            message,
            wait_for_response=wait_for_response,
            timeout=timeout,
            check_content=check_content,
        )

    def screenshot(self, name: str, full_page: bool = True) -> Path:
        path = self.settings.screenshots_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        self.page.screenshot(path=str(path), full_page=full_page)
        return path
