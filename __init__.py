"""
LibreChat Demo Tests - Playwright automation for the Integrationsbericht demo.

This package provides:
- Turn synchronization for chat replies (Stop button, settle, content checks)
- Scripted demo scenarios loaded from fixtures/*.json
- JSONL step logging and run analysis

Usage:
    CLI: librechat-tests run -m smoke
         librechat-tests analyze reports/test_run_<timestamp>.jsonl --all
"""

__version__ = "1.0.0"
