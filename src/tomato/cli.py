import argparse
import json
import sys
from pathlib import Path

from tomato.exception import TomatoError
from tomato.runner import build_registries, run_suite
from tomato.runtime.settings import load_settings
from tomato.spec import CAPABILITIES
from tomato.validation import validate_suite


EXIT_CANCELLED = 130

STARTER_CONFIG = """\
# tomato suite config
features_path: features
readiness_timeout: 15s

resources:
  - name: sh
    type: shell
"""

STARTER_FEATURE = """\
Feature: example

  Scenario: shell says hello
    Given "sh" execute "echo hello"
    Then "sh" exit code equal to 0
    And "sh" stdout should contains "hello"
"""


def _split_paths(raw):
    if not raw:
        return None
    return [p.strip() for p in raw.split(",") if p.strip()]


def _settings(args):
    return load_settings({"log_level": "DEBUG"} if args.debug else None)


def _cmd_run(args) -> int:
    overrides = {}
    if args.stop_on_failure:
        overrides["stop_on_failure"] = True
    if args.randomize:
        overrides["randomize"] = True
    if args.seed is not None:
        overrides["seed"] = args.seed
    try:
        summary = run_suite(
            args.config,
            settings=_settings(args),
            features_paths=_split_paths(args.features_path),
            overrides=overrides or None,
        )
    except TomatoError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    if summary.cancelled:
        return EXIT_CANCELLED
    return 0 if summary.ok else 1


def _cmd_validate(args) -> int:
    report = validate_suite(args.config, settings=_settings(args), features_paths=_split_paths(args.features_path))
    if args.json:
        print(json.dumps(report, ensure_ascii=False))
    else:
        if report.get("ok"):
            print(f"OK: {report.get('config')} ({report.get('resources')} resources, "
                  f"{report.get('scenarios')} scenarios)")
        else:
            print(f"INVALID: {report.get('config')}")
            for e in report.get("errors", []):
                print(f"- {e.get('loc')}: {e.get('code')} - {e.get('msg')}")
        for w in report.get("warnings", []) or []:
            print(f"! {w.get('loc')}: {w.get('code')} - {w.get('msg')}")
    return 0 if report.get("ok") else 2


def _cmd_steps(args) -> int:
    try:
        _drivers, steps = build_registries(_settings(args))
    except TomatoError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    needle = (args.filter or "").lower()
    entries = []
    # registry scans newest first; list in registration order
    for sp in reversed(steps.list(args.type)):
        d = sp.as_dict()
        if needle and not any(needle in (d.get(k) or "").lower() for k in ("pattern", "description", "example")):
            continue
        entries.append(d)

    if args.json:
        print(json.dumps(entries, ensure_ascii=False))
        return 0

    for cap in CAPABILITIES:
        group = [e for e in entries if e["capability"] == cap]
        if not group:
            continue
        print(f"{cap}")
        for e in group:
            print(f"  [{e['group']}] {e['pattern']}")
            if e.get("description"):
                print(f"      {e['description']}")
            if e.get("example"):
                print(f"      e.g. {e['example']}")
    others = [e for e in entries if e["capability"] not in CAPABILITIES]
    for e in others:
        print(f"  [{e['capability']}] {e['pattern']}")
    return 0


def _cmd_init(args) -> int:
    root = Path(args.dir)
    targets = {
        root / "tomato.yml": STARTER_CONFIG,
        root / "features" / "example.feature": STARTER_FEATURE,
    }
    existing = [str(p) for p in targets if p.exists()]
    if existing:
        print(f"refusing to overwrite: {', '.join(existing)}", file=sys.stderr)
        return 1
    for path, content in targets.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        print(f"created {path}")
    return 0


def main(argv=None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = argparse.ArgumentParser(prog="tomato", description="behavioral test runner for external services")
    sp = parser.add_subparsers(dest="cmd", required=True)

    # flags shared by every suite command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--features.path", dest="features_path", default=None,
                        help="Comma-separated feature files or directories (overrides the config)")
    common.add_argument("--debug", action="store_true", help="Debug logging")

    runp = sp.add_parser("run", parents=[common], help="Run every scenario of a suite")
    runp.add_argument("config", nargs="?", default="tomato.yml", help="Path to suite config YAML")
    runp.add_argument("--stop-on-failure", action="store_true", help="Halt on the first failing scenario")
    runp.add_argument("--randomize", action="store_true", help="Shuffle scenarios within each feature")
    runp.add_argument("--seed", type=int, default=None, help="Seed used with --randomize")

    valp = sp.add_parser("validate", parents=[common], help="Validate config, resources and steps without touching services")
    valp.add_argument("config", nargs="?", default="tomato.yml", help="Path to suite config YAML")
    valp.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    stepp = sp.add_parser("steps", parents=[common], help="List the step catalog")
    stepp.add_argument("--filter", default=None, help="Only steps whose pattern or description contains TEXT")
    stepp.add_argument("--type", default=None, choices=CAPABILITIES, help="Only steps of one capability")
    stepp.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    initp = sp.add_parser("init", help="Write a starter config and feature")
    initp.add_argument("--dir", default=".", help="Target directory")

    args = parser.parse_args(argv)
    if args.cmd == "run":
        return _cmd_run(args)
    if args.cmd == "validate":
        return _cmd_validate(args)
    if args.cmd == "steps":
        return _cmd_steps(args)
    if args.cmd == "init":
        return _cmd_init(args)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
