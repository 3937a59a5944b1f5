"""Console output utilities with color support."""

import os

# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
YELLOW = "\033[33m"
CYAN = "\033[36m"
BRIGHT_GREEN = "\033[92m"
BRIGHT_RED = "\033[91m"
BRIGHT_CYAN = "\033[96m"

BANNER_WIDTH = 56

# Test and step outcomes as emitted by the event plugin
OUTCOME_STYLES = {
    "passed": (BOLD, BRIGHT_GREEN),
    "failed": (BOLD, BRIGHT_RED),
    "error": (YELLOW,),
}

# Module-level color state
_force_color = None


def use_color() -> bool:
    """Check if colors should be used."""
    if _force_color is not None:
        return _force_color
    if os.environ.get("NO_COLOR"):
        return False
    return os.isatty(1)


def force_color(enabled: bool):
    """Force colors on or off."""
    global _force_color
    _force_color = enabled


def style(text: str, *codes: str) -> str:
    """Apply style codes to text."""
    if not use_color():
        return text
    return f"{''.join(codes)}{text}{RESET}"


# Semantic styling helpers
def success(text: str) -> str:
    return style(text, *OUTCOME_STYLES["passed"])


def error(text: str) -> str:
    return style(text, *OUTCOME_STYLES["failed"])


def warn(text: str) -> str:
    return style(text, *OUTCOME_STYLES["error"])


def info(text: str) -> str:
    return style(text, BRIGHT_CYAN)


def label(text: str) -> str:
    return style(text, BOLD, CYAN)


def dim(text: str) -> str:
    return style(text, DIM)


def bold(text: str) -> str:
    return style(text, BOLD)


def outcome(name: str, text: str = None) -> str:
    """Style an outcome word; ``text`` defaults to the upper-cased outcome.

    Unknown outcomes (skipped, unknown) are dimmed.
    """
    return style(text or name.upper(), *OUTCOME_STYLES.get(name, (DIM,)))


def step_icon(step_outcome: str, step_type: str = "action") -> str:
    """One-character marker for a step line: x failed, i info, ~ wait, + action."""
    if step_outcome == "failed":
        return error("x")
    if step_type == "info":
        return dim("i")
    if step_type == "wait":
        return info("~")
    return success("+")


def rule(char: str = "━") -> str:
    return dim(char * BANNER_WIDTH)


# Output functions
def writeln(text: str = ""):
    """Write line to stdout, bypassing pytest's capture."""
    os.write(1, f"{text}\n".encode())


def banner(title: str):
    """Print a scenario step header framed by rules."""
    writeln()
    writeln(rule())
    writeln(bold(title))
    writeln(rule())


def log(text: str, flush: bool = True):
    """Print text to stdout."""
    print(text, flush=flush)
