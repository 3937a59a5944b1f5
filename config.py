"""Configuration settings for LibreChat demo Playwright tests."""

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings loaded from environment variables or JSON file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # LibreChat URLs
    librechat_base_url: str = Field(
        default="http://localhost:3080",
        description="Base URL for the LibreChat frontend",
    )
    login_path: str = Field(default="/login", description="Path to the login page")
    register_path: str = Field(default="/register", description="Path to the registration page")
    new_chat_path: str = Field(default="/c/new", description="Path that opens a new conversation")

    # Demo identity
    demo_user_email: str = Field(
        default="full-demo@senticor.de",
        description="Email of the demo user (registered on first run if missing)",
    )
    demo_user_password: str = Field(
        default="FullDemo2025!Secure",
        description="Password of the demo user",
    )
    demo_user_name: str = Field(
        default="Senticor Full Demo",
        description="Display name used when registering the demo user",
    )
    agent_name: str = Field(
        default="KI-Referent",
        description="Agent selected for scenarios that name no agent",
    )

    # Browser settings
    headless: bool = Field(
        default=True,
        description="Run browser in headless mode",
    )
    browser: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser to use for testing",
    )
    slow_mo: int = Field(
        default=300,
        description="Slow motion delay (ms) applied when running headed",
    )
    viewport_width: int = Field(default=1920, description="Browser viewport width")
    viewport_height: int = Field(default=1080, description="Browser viewport height")

    # Timeouts (ms)
    timeout: int = Field(
        default=120000,
        description="Default timeout for page actions (ms)",
    )
    expect_timeout: int = Field(
        default=30000,
        description="Default timeout for expect operations (ms)",
    )
    navigation_timeout: int = Field(
        default=15000,
        description="Timeout for page loads and post-login redirects (ms)",
    )
    input_timeout: int = Field(
        default=10000,
        description="Time allowed for the message input to become interactable (ms)",
    )
    indicator_timeout: int = Field(
        default=30000,
        description="Time allowed for the Stop button to appear after sending (ms)",
    )
    turn_timeout: int = Field(
        default=180000,
        description="Default time allowed for a response to finish streaming (ms)",
    )
    settle_delay: int = Field(
        default=2000,
        description="Fixed pause after the Stop button disappears (ms)",
    )
    stable_polls: int = Field(
        default=2,
        description="Consecutive unchanged reads required before a response counts as settled (0 disables)",
    )
    poll_interval: int = Field(
        default=500,
        description="Interval between response text reads (ms)",
    )
    content_timeout: int = Field(
        default=10000,
        description="Time allowed for expected content to show up after settling (ms)",
    )
    registration_delay: int = Field(
        default=3000,
        description="Pause after submitting the registration form (ms)",
    )
    max_login_attempts: int = Field(
        default=2,
        description="Login attempts before giving up (one registration between attempts)",
    )

    # Output settings
    reports_dir: str = Field(
        default="./librechat_tests/reports",
        description="Directory for test reports",
    )
    screenshots_dir: str = Field(
        default="./librechat_tests/screenshots",
        description="Directory for diagnostic and final screenshots",
    )

    # Fixtures settings
    fixtures_dir: Optional[str] = Field(
        default=None,
        description="Directory containing scenario fixtures (defaults to ./fixtures relative to package)",
    )

    @model_validator(mode='after')
    def validate_timing(self):
        """Reject timing values the synchronizer cannot work with."""
        for name in (
            "timeout", "expect_timeout", "navigation_timeout", "input_timeout",
            "indicator_timeout", "turn_timeout", "poll_interval", "content_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be a positive number of milliseconds")
        if self.settle_delay < 0 or self.registration_delay < 0:
            raise ValueError("SETTLE_DELAY and REGISTRATION_DELAY must not be negative")
        if self.stable_polls < 0:
            raise ValueError("STABLE_POLLS must not be negative")
        if self.max_login_attempts < 1:
            raise ValueError("MAX_LOGIN_ATTEMPTS must be at least 1")
        return self

    def url(self, path: str) -> str:
        """Absolute URL for a path on the LibreChat instance."""
        return f"{self.librechat_base_url.rstrip('/')}{path}"

    @property
    def login_url(self) -> str:
        return self.url(self.login_path)

    @property
    def register_url(self) -> str:
        return self.url(self.register_path)

    @property
    def new_chat_url(self) -> str:
        return self.url(self.new_chat_path)

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @property
    def reports_path(self) -> Path:
        """Path object for reports directory."""
        return Path(self.reports_dir)

    @property
    def screenshots_path(self) -> Path:
        """Path object for screenshots directory."""
        return Path(self.screenshots_dir)

    @property
    def fixtures_path(self) -> Path:
        """Get the path to the fixtures directory."""
        if self.fixtures_dir:
            return Path(self.fixtures_dir)
        return Path(__file__).parent / "fixtures"

    @classmethod
    def from_json(cls, json_path: Path) -> "Settings":
        """Load settings from a JSON config file.

        JSON keys use snake_case matching the field names.
        Values from the file take precedence over environment variables and .env.
        """
        with open(json_path) as f:
            config_data = json.load(f)
        return cls(**config_data)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the current settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings


def load_settings_from_json(json_path: Path) -> Settings:
    """Load settings from JSON file and set as global instance."""
    global _settings
    _settings = Settings.from_json(json_path)
    return _settings
