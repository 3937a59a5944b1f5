import pytest
from playwright.sync_api import Page, expect
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from librechat_tests.config import Settings, get_settings
from librechat_tests.page_objects import DemoUser, LibreChatPage, LibreChatSelectors, TurnSynchronizer
from librechat_tests.scenario import load_scenarios
from librechat_tests.step import step


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests against the live LibreChat instance (skipped otherwise)",
    )
    parser.addoption(
        "--scenario",
        action="store",
        default=None,
        help="Comma-separated scenario ids to run (default: all fixtures)",
    )


def pytest_generate_tests(metafunc):
    """Parametrize scenario tests with every fixture file, filtered by --scenario."""
    if "scenario" in metafunc.fixturenames:
        scenarios = load_scenarios(get_settings().fixtures_path)
        selected = metafunc.config.getoption("--scenario")

        if selected:
            wanted = set(selected.split(","))
            scenarios = [s for s in scenarios if s.id in wanted]

        metafunc.parametrize("scenario", scenarios, ids=lambda s: s.id)


def pytest_collection_modifyitems(config, items):
    """Apply scenario markers and skip live tests unless --live is given."""
    live = config.getoption("--live")
    skip_live = pytest.mark.skip(reason="needs a running LibreChat instance (use --live)")

    for item in items:
        if hasattr(item, "callspec") and "scenario" in item.callspec.params:
            for marker_name in item.callspec.params["scenario"].markers:
                item.add_marker(getattr(pytest.mark, marker_name))

        if "live" in item.keywords and not live:
            item.add_marker(skip_live)


# === Settings ===

@pytest.fixture(scope="session", autouse=True)
def settings():
    """Get test settings."""
    return get_settings()


@pytest.fixture(scope="session", autouse=True)
def configure_expect_timeout(settings):
    """Set global expect timeout from settings."""
    expect.set_options(timeout=settings.expect_timeout)


@pytest.fixture(scope="session")
def demo_user(settings) -> DemoUser:
    return DemoUser.from_settings(settings)


# === Browser ===

@pytest.fixture
def context(browser, settings):
    """Create a new browser context sized for demo recordings."""
    context = browser.new_context(viewport=settings.viewport)
    yield context
    context.close()


@pytest.fixture
def page(context, settings):
    page = context.new_page()
    page.set_default_timeout(settings.timeout)
    yield page
    page.close()


@pytest.fixture
def librechat_page(page: Page, settings, demo_user) -> LibreChatPage:
    """Logged-in LibreChat page positioned on a new conversation."""
    librechat_page = LibreChatPage(page, settings)
    librechat_page.ensure_session(demo_user)
    librechat_page.new_conversation()

    with step("Verify message input is ready"):
        expect(librechat_page.message_input).to_be_visible()

    return librechat_page


@pytest.fixture(scope="class")
def shared_librechat_page(browser, settings, demo_user) -> LibreChatPage:
    """One logged-in session reused by every test of a class."""
    context = browser.new_context(viewport=settings.viewport)
    page = context.new_page()
    page.set_default_timeout(settings.timeout)
    librechat_page = LibreChatPage(page, settings)
    librechat_page.ensure_session(demo_user)
    yield librechat_page
    context.close()


# === Fakes for browser-free synchronizer tests ===

class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakePage:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.waits: list[float] = []

    def wait_for_timeout(self, timeout: float):
        self.waits.append(timeout)
        self.clock.advance(timeout / 1000)


class FakeTextbox:
    def __init__(self, clock: FakeClock, ready: bool = True):
        self.clock = clock
        self.ready = ready
        self.actions: list[tuple] = []

    def wait_for(self, state: str, timeout: float):
        if not self.ready:
            self.clock.advance(timeout / 1000)
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        self.actions.append(("wait_for", state))

    def click(self):
        self.actions.append(("click",))

    def fill(self, value: str):
        self.actions.append(("fill", value))

    def press(self, key: str):
        self.actions.append(("press", key))


class FakeStopButton:
    """Stop button that shows up ``appears_after`` seconds after each submit
    and stays for ``streams_for`` seconds. None means never."""

    def __init__(self, clock: FakeClock, appears_after=1.0, streams_for=10.0):
        self.clock = clock
        self.appears_after = appears_after
        self.streams_for = streams_for
        self.calls: list[str] = []

    def _wait(self, seconds, timeout: float):
        if seconds is None or seconds * 1000 > timeout:
            self.clock.advance(timeout / 1000)
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        self.clock.advance(seconds)

    def wait_for(self, state: str, timeout: float):
        self.calls.append(state)
        if state == "visible":
            self._wait(self.appears_after, timeout)
        elif state == "hidden":
            self._wait(self.streams_for, timeout)
        else:
            raise ValueError(f"Unexpected state {state}")


class FakeResponses:
    """Rendered replies; ``timeline`` is a list of (clock time, text) or a
    callable returning the text for the current time."""

    def __init__(self, clock: FakeClock, timeline=None, on_read=None):
        self.clock = clock
        self.timeline = timeline if timeline is not None else []
        self.on_read = on_read
        self.reads = 0

    def _current(self):
        if callable(self.timeline):
            return self.timeline(self.clock.now)
        text = None
        for at, value in self.timeline:
            if at <= self.clock.now:
                text = value
        return text

    def count(self) -> int:
        return 0 if self._current() is None else 1

    @property
    def last(self):
        return self

    def inner_text(self) -> str:
        self.reads += 1
        if self.on_read:
            self.on_read()
        return self._current()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_page(clock) -> FakePage:
    return FakePage(clock)


@pytest.fixture
def textbox(clock) -> FakeTextbox:
    return FakeTextbox(clock)


@pytest.fixture
def stop_button(clock) -> FakeStopButton:
    return FakeStopButton(clock)


@pytest.fixture
def responses(clock) -> FakeResponses:
    return FakeResponses(clock)


@pytest.fixture
def turn_settings() -> Settings:
    return Settings(
        input_timeout=10000,
        indicator_timeout=30000,
        turn_timeout=180000,
        settle_delay=2000,
        stable_polls=2,
        poll_interval=500,
        content_timeout=10000,
    )


@pytest.fixture
def synchronizer(fake_page, textbox, stop_button, responses, turn_settings, clock) -> TurnSynchronizer:
    return TurnSynchronizer(
        fake_page,
        textbox=textbox,
        indicator=stop_button,
        responses=responses,
        settings=turn_settings,
        clock=clock,
    )


# === Fake LibreChat for browser-free page object tests ===

class FakeLocator:
    """Locator resolved against a FakeLibreChat on every call."""

    def __init__(self, app: "FakeLibreChat", selector: str):
        self.app = app
        self.selector = selector

    @property
    def first(self):
        return self

    @property
    def last(self):
        return self

    def filter(self, has_text=None):
        return self

    def count(self) -> int:
        return 1 if self.app.is_visible(self.selector) else 0

    def wait_for(self, state: str = "visible", timeout: float = None):
        if (state == "visible") != self.app.is_visible(self.selector):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.selector} to be {state}")

    def click(self, timeout: float = None):
        self.wait_for("visible", timeout)
        self.app.click(self.selector)


class FakeLibreChat:
    """Stand-in for the LibreChat page covering auth redirects and the agent picker.

    Authenticated users are sent from /login and /register to a new chat,
    anonymous users from /c/... to /login, as the real app does.
    """

    def __init__(self, settings: Settings, accounts=(), registration_open=True, register_form=True, agents=()):
        self.settings = settings
        self.accounts = set(accounts)
        self.registration_open = registration_open
        self.register_form = register_form
        self.agents = list(agents)
        self.user = None
        self.url = "about:blank"
        self.picker_open = False
        self.filled: dict[str, str] = {}
        self.logins: list[str] = []
        self.registrations: list[str] = []
        self.selected_agents: list[str] = []
        self.screenshots: list[str] = []

    # Navigation
    def goto(self, url: str, timeout: float = None):
        self.filled = {}
        self.picker_open = False
        if self.user and url in (self.settings.login_url, self.settings.register_url):
            url = self.settings.new_chat_url
        elif not self.user and "/c/" in url:
            url = self.settings.login_url
        self.url = url

    def wait_for_url(self, pattern, timeout: float = None):
        if not pattern.search(self.url):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for URL {pattern.pattern}")

    def wait_for_timeout(self, timeout: float):
        pass

    # Forms
    def _form_fields(self) -> set:
        s = LibreChatSelectors
        if self.url == self.settings.login_url:
            return {s.EMAIL_INPUT, s.PASSWORD_INPUT, s.SUBMIT_BUTTON}
        if self.url == self.settings.register_url and self.register_form:
            return {s.NAME_INPUT, s.EMAIL_INPUT, s.PASSWORD_INPUT, s.CONFIRM_PASSWORD_INPUT, s.SUBMIT_BUTTON}
        return set()

    def fill(self, selector: str, value: str, timeout: float = None):
        if selector not in self._form_fields():
            raise PlaywrightTimeoutError(f"Timeout exceeded waiting for {selector} on {self.url}")
        self.filled[selector] = value

    def is_visible(self, selector: str) -> bool:
        s = LibreChatSelectors
        in_chat = self.user is not None and "/c/" in self.url
        if selector in (s.MESSAGE_INPUT, s.MODEL_SELECTOR_BUTTON):
            return in_chat
        if selector.startswith("text="):
            return self.picker_open and selector[len("text="):] in self.agents
        return False

    def click(self, selector: str, timeout: float = None):
        s = LibreChatSelectors
        if selector == s.SUBMIT_BUTTON:
            if selector not in self._form_fields():
                raise PlaywrightTimeoutError(f"Timeout exceeded waiting for {selector} on {self.url}")
            self._submit(self.filled.get(s.EMAIL_INPUT))
        elif selector == s.MODEL_SELECTOR_BUTTON:
            self.picker_open = True
        elif selector.startswith("text="):
            self.selected_agents.append(selector[len("text="):])

    def _submit(self, email: str):
        if self.url == self.settings.login_url:
            self.logins.append(email)
            if email in self.accounts:
                self.user = email
                self.url = self.settings.new_chat_url
        else:
            self.registrations.append(email)
            if self.registration_open:
                self.accounts.add(email)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        return FakeLocator(self, f"text={text}")

    def screenshot(self, path: str, full_page: bool = False):
        self.screenshots.append(path)


@pytest.fixture
def session_settings(tmp_path) -> Settings:
    return Settings(max_login_attempts=2, screenshots_dir=str(tmp_path / "screenshots"))


@pytest.fixture
def fake_user() -> DemoUser:
    return DemoUser(email="full-demo@senticor.de", password="FullDemo2025!Secure", name="Full Demo")


@pytest.fixture
def make_librechat(session_settings):
    def make(**kwargs) -> FakeLibreChat:
        return FakeLibreChat(session_settings, **kwargs)
    return make
