"""Main entry point for LibreChat demo tests - CLI."""

import argparse
import json
import sys
from pathlib import Path

from librechat_tests.config import get_settings, load_settings_from_json
from librechat_tests import console


def write_json(data: dict, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_config(args) -> bool:
    """Load config from specified path or default config.json."""
    config_path = Path(args.config) if args.config else Path("config.json")

    if not config_path.exists():
        if args.config:
            console.log(f"{console.error('Error:')} Config file not found: {config_path}")
            return False
        return True

    try:
        load_settings_from_json(config_path)
        console.log(f"Loaded config from: {config_path}")
        return True
    except (json.JSONDecodeError, ValueError) as e:
        console.log(f"{console.error('Error:')} Invalid config file: {e}")
        return False


def _print_run_header(settings, headless, markers, scenarios, output_path):
    console.log("Running LibreChat demo tests...")
    console.log(f"  Headless:  {headless}")
    console.log(f"  Base URL:  {settings.librechat_base_url}")
    console.log(f"  User:      {settings.demo_user_email}")
    console.log(f"  Markers:   {markers or 'all'}")
    console.log(f"  Scenarios: {scenarios or 'all'}")
    console.log(f"  Output:    {output_path}")
    console.log("")


def _print_run_summary(result):
    line = console.dim("=" * 50)
    console.log(f"\n{line}")
    console.log(f"Test Run Complete: {console.info(result.run_id[:8])}")

    status = console.success("COMPLETED") if result.status.value == "completed" else console.error("FAILED")
    console.log(f"Status: {status}")
    console.log(f"Duration: {console.dim(f'{result.duration_seconds:.2f}s')}")

    passed = console.success(str(result.passed))
    failed = console.error(str(result.failed)) if result.failed else "0"
    errors = console.warn(str(result.errors)) if result.errors else "0"
    console.log(
        f"Passed: {passed}, Failed: {failed}, Errors: {errors}, "
        f"Skipped: {result.skipped}, Total: {result.total}"
    )

    console.log(f"Output: {console.dim(result.output_file)}")
    console.log(line)


def cli_run(args):
    """Run the live suite."""
    from librechat_tests.runner import run_tests_sync
    from librechat_tests.output import generate_output_filename

    if not load_config(args):
        return 1

    if args.color:
        console.force_color(True)

    markers = args.marker.split(",") if args.marker else None
    scenarios = args.scenario.split(",") if args.scenario else None
    settings = get_settings()

    if args.base_url:
        settings.librechat_base_url = args.base_url

    if args.output:
        output_path = Path(args.output)
        if output_path.is_dir():
            output_path = output_path / generate_output_filename()
    else:
        output_path = settings.reports_path / generate_output_filename()

    headless = settings.headless and not args.headed
    _print_run_header(settings, headless, markers, scenarios, output_path)

    result = run_tests_sync(
        markers=markers,
        headless=headless,
        output_path=output_path,
        scenarios=scenarios,
    )

    _print_run_summary(result)
    return 0 if result.status.value == "completed" else 1


def cli_analyze(args):
    """Analyze test results from JSONL file."""
    from librechat_tests.analyze import (
        analyze_jsonl, print_summary, print_failures, print_steps,
        print_by_marker, print_performance, print_scenarios,
    )

    if not load_config(args):
        return 1

    input_path = Path(args.input)
    if not input_path.exists():
        console.log(f"{console.error('Error:')} File not found: {input_path}")
        return 1

    try:
        analysis = analyze_jsonl(input_path)
    except ValueError as e:
        console.log(f"{console.error('Error:')} {e}")
        return 1

    print_summary(analysis)

    show_all = args.all
    if args.scenarios or show_all:
        print_scenarios(analysis)
    if args.by_marker or show_all:
        print_by_marker(analysis)
    if args.performance or show_all:
        print_performance(analysis)
    if args.steps or show_all:
        print_steps(analysis)
    if args.failures or show_all:
        print_failures(analysis)

    json_path = get_settings().reports_path / f"analysis_{input_path.stem}.json"
    write_json(analysis.to_dict(), json_path)
    console.log(f"Analysis JSON written to: {json_path}")

    return 0 if analysis.failed_tests == 0 and analysis.error_tests == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="LibreChat Demo Playwright Tests",
        prog="librechat_tests",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Run the live demo scenarios")
    run_parser.add_argument("-c", "--config", help="Path to JSON config file")
    run_parser.add_argument("-m", "--marker", help="Comma-separated test markers (demo, smoke, health, full)")
    run_parser.add_argument("-s", "--scenario", help="Comma-separated scenario ids")
    run_parser.add_argument("--base-url", help="LibreChat base URL (overrides config)")
    run_parser.add_argument("--headed", action="store_true", help="Show browser (overrides config)")
    run_parser.add_argument("-o", "--output", help="Output file/directory")
    run_parser.add_argument("--color", action="store_true", help="Force colors")
    run_parser.set_defaults(func=cli_run)

    analyze_parser = subparsers.add_parser("analyze", help="Analyze a JSONL run log")
    analyze_parser.add_argument("-c", "--config", help="Path to JSON config file")
    analyze_parser.add_argument("input", help="JSONL file to analyze")
    analyze_parser.add_argument("--failures", action="store_true", help="Show failures")
    analyze_parser.add_argument("--steps", action="store_true", help="Show steps")
    analyze_parser.add_argument("--scenarios", action="store_true", help="Show per-scenario turn timings")
    analyze_parser.add_argument("--by-marker", action="store_true", help="Group by marker")
    analyze_parser.add_argument("--performance", action="store_true", help="Show slowest responses and tests")
    analyze_parser.add_argument("--all", action="store_true", help="Show all analysis sections")
    analyze_parser.set_defaults(func=cli_analyze)

    return parser


def main():
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
