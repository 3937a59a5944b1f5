"""Browser-free tests for the turn synchronizer.

The Stop button, message input and rendered replies are replaced by fakes
driven by a fake clock, so every wait resolves instantly and deterministically.
"""

import re

import pytest

from librechat_tests.page_objects import (
    ContentMismatchError,
    SetupError,
    TurnInProgressError,
    TurnTimeoutError,
)
from librechat_tests.page_objects.turn import await_completion, find_match, poll_until


HONEYCOMB = re.compile(r"honeycomb|wissensgraph|erstellt", re.IGNORECASE)


@pytest.mark.unit
class TestTurnSynchronizer:

    def test_returns_after_stop_button_clears(self, synchronizer, stop_button, responses, textbox):
        responses.timeline = [(0, "Ich habe den Honeycomb für den Bericht angelegt.")]

        turn = synchronizer.send(
            "Ich erstelle den Integrationsbericht Baden-Württemberg 2025…",
            timeout=240000,
            check_content=HONEYCOMB,
        )

        assert stop_button.calls == ["visible", "hidden"]
        assert turn.indicator_seen
        assert turn.matched == "Honeycomb"
        # 1s until Stop shows, 10s streaming, 2s settle delay
        assert turn.finished_at >= 13
        assert textbox.actions == [
            ("wait_for", "visible"),
            ("click",),
            ("fill", "Ich erstelle den Integrationsbericht Baden-Württemberg 2025…"),
            ("press", "Enter"),
        ]

    def test_stop_button_never_clearing_times_out(self, synchronizer, stop_button, responses, clock):
        stop_button.streams_for = None
        responses.timeline = [(0, "Honeycomb")]

        with pytest.raises(TurnTimeoutError, match="5000ms"):
            synchronizer.send("Zeige mir alle Entitäten", timeout=5000, check_content=HONEYCOMB)

        assert clock.now == pytest.approx(1 + 5)
        assert responses.reads == 0
        assert synchronizer.turns[-1].finished_at is not None

    def test_missing_stop_button_is_tolerated(self, synchronizer, stop_button, responses, clock):
        stop_button.appears_after = None
        responses.timeline = [(0, "Der Wissensgraph wurde erstellt.")]

        turn = synchronizer.send("Ich erstelle den Integrationsbericht", check_content=HONEYCOMB)

        assert stop_button.calls == ["visible"]
        assert not turn.indicator_seen
        assert turn.matched == "Wissensgraph"
        assert clock.now >= 30 + 2

    def test_no_wait_skips_every_check(self, synchronizer, stop_button, responses, fake_page):
        responses.timeline = [(0, "irrelevant")]

        turn = synchronizer.send("Hallo", wait_for_response=False, check_content=HONEYCOMB)

        assert not turn.waited
        assert turn.finished_at - turn.submitted_at < 1
        assert stop_button.calls == []
        assert responses.reads == 0
        assert fake_page.waits == []
        assert turn.text is None

    def test_content_mismatch_fails_turn(self, synchronizer, responses):
        responses.timeline = [(0, "Dazu habe ich keine Informationen.")]

        with pytest.raises(ContentMismatchError) as excinfo:
            synchronizer.send("Welche Gesetze regeln Integration?", check_content=re.compile("gesetz|sgb", re.I))

        assert isinstance(excinfo.value, AssertionError)
        assert excinfo.value.text == "Dazu habe ich keine Informationen."
        assert "/gesetz|sgb/i" in str(excinfo.value)

    def test_content_rendered_after_settle_still_matches(self, synchronizer, responses):
        # Settled at 14s (13s + two stable reads), final text shows up at 15s
        responses.timeline = [(0, "Ich"), (15, "Ich habe den Wissensgraph erstellt.")]

        turn = synchronizer.send("Erstelle den Honeycomb", check_content=HONEYCOMB)

        assert turn.matched == "Wissensgraph"
        assert turn.finished_at == 15

    def test_plain_string_is_case_sensitive_substring(self, synchronizer, responses):
        responses.timeline = [(0, "Siehe § 43 AufenthG.")]

        turn = synchronizer.send("Integrationskurse?", check_content="AufenthG")
        assert turn.matched == "AufenthG"

        with pytest.raises(ContentMismatchError):
            synchronizer.send("Integrationskurse?", check_content="aufenthg")

    def test_settle_waits_for_text_to_stop_changing(self, synchronizer, responses):
        responses.timeline = [(0, "a"), (13.5, "ab"), (14.5, "abc")]

        turn = synchronizer.send("Gliederung bitte")

        assert turn.text == "abc"
        assert turn.finished_at == 15.5

    def test_unstable_text_does_not_fail_turn(self, synchronizer, responses, turn_settings):
        responses.timeline = lambda now: f"token {now}"

        turn = synchronizer.send("Gliederung bitte")

        # 11s streaming + 2s settle + bounded stability wait
        assert turn.finished_at == pytest.approx(13 + turn_settings.content_timeout / 1000)

    def test_stability_check_disabled(self, fake_page, textbox, stop_button, responses, clock):
        from librechat_tests.config import Settings
        from librechat_tests.page_objects import TurnSynchronizer

        responses.timeline = lambda now: f"token {now}"
        sync = TurnSynchronizer(
            fake_page, textbox, stop_button, responses,
            Settings(stable_polls=0, settle_delay=2000), clock=clock,
        )

        turn = sync.send("Hallo")

        assert turn.finished_at == 13
        assert responses.reads == 0

    def test_input_not_ready_is_setup_error(self, synchronizer, textbox, stop_button):
        textbox.ready = False

        with pytest.raises(SetupError):
            synchronizer.send("Hallo")

        assert textbox.actions == []
        assert stop_button.calls == []
        assert synchronizer.turns == []

    @pytest.mark.parametrize("message", ["", "   ", "\n"])
    def test_blank_message_rejected(self, synchronizer, textbox, message):
        with pytest.raises(ValueError):
            synchronizer.send(message)
        assert textbox.actions == []

    @pytest.mark.parametrize("timeout", [0, -1000])
    def test_non_positive_timeout_rejected(self, synchronizer, textbox, stop_button, timeout):
        with pytest.raises(ValueError, match="must be positive"):
            synchronizer.send("Hallo", timeout=timeout)

        assert textbox.actions == []
        assert stop_button.calls == []
        assert synchronizer.turns == []

    def test_default_timeout_applies_when_omitted(self, synchronizer, stop_button, clock, turn_settings):
        stop_button.streams_for = None

        with pytest.raises(TurnTimeoutError, match=f"{turn_settings.turn_timeout}ms"):
            synchronizer.send("Hallo")

        assert clock.now == pytest.approx(1 + turn_settings.turn_timeout / 1000)

    def test_sequential_turns_do_not_overlap(self, synchronizer, responses):
        responses.timeline = [(0, "Projekt Honeycomb")]

        for message in ["Schritt 1", "Schritt 2", "Schritt 3"]:
            synchronizer.send(message, check_content=HONEYCOMB)
        synchronizer.send("Schritt 4", wait_for_response=False)

        turns = synchronizer.turns
        assert [t.message for t in turns] == ["Schritt 1", "Schritt 2", "Schritt 3", "Schritt 4"]
        for previous, current in zip(turns, turns[1:]):
            assert current.submitted_at >= previous.finished_at

    def test_submitting_during_open_turn_is_rejected(self, synchronizer, responses):
        responses.timeline = [(0, "Honeycomb")]
        responses.on_read = lambda: synchronizer.send("Zweite Nachricht")

        with pytest.raises(TurnInProgressError):
            synchronizer.send("Erste Nachricht", check_content=HONEYCOMB)

        assert [t.message for t in synchronizer.turns] == ["Erste Nachricht"]

        # Guard is released once the failed turn is over
        responses.on_read = None
        synchronizer.send("Dritte Nachricht", check_content=HONEYCOMB)


@pytest.mark.unit
class TestHelpers:

    def test_await_completion_reports_missing_indicator(self, stop_button):
        stop_button.appears_after = None
        assert await_completion(stop_button, timeout=1000, appear_timeout=500) is False

    def test_await_completion_times_out(self, stop_button):
        stop_button.streams_for = 5
        with pytest.raises(TurnTimeoutError):
            await_completion(stop_button, timeout=1000, appear_timeout=5000)

    def test_poll_until_probes_once_without_time(self, fake_page, clock):
        calls = []

        def probe():
            calls.append(clock())
            return False

        assert poll_until(probe, timeout=0, interval=100, wait=fake_page.wait_for_timeout, clock=clock) is False
        assert calls == [0.0]
        assert fake_page.waits == []

    def test_poll_until_never_waits_past_deadline(self, fake_page, clock):
        assert poll_until(lambda: False, timeout=1250, interval=500, wait=fake_page.wait_for_timeout, clock=clock) is False
        assert fake_page.waits == [500, 500, 250]

    @pytest.mark.parametrize("text,pattern,expected", [
        ("Kapitel 1: Einleitung", re.compile(r"kapitel|gliederung", re.I), "Kapitel"),
        ("§ 44 AufenthG", re.compile("§"), "§"),
        ("nichts", re.compile("honeycomb", re.I), None),
        ("Honeycomb", "Honeycomb", "Honeycomb"),
        ("Honeycomb", "honeycomb", None),
    ])
    def test_find_match(self, text, pattern, expected):
        assert find_match(text, pattern) == expected
