#!/usr/bin/env python3
"""Destroy resources created by fleet_deploy.py.

Reads state from ./generated/.env (preferred) or ./.env and removes the created Azure resources.

Modes:
  Default: delete the resource group (everything is removed).
  --keep-rg: best-effort delete resources inside the RG.
  --keep-rg --keep-storage: keep the storage account + file shares, delete everything else.

Examples:
  python -m scripts.deploy.fleet_destroy
  python -m scripts.deploy.fleet_destroy --yes
  python -m scripts.deploy.fleet_destroy --keep-rg --yes
  python -m scripts.deploy.fleet_destroy --keep-rg --keep-storage --yes
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path

from scripts.azure_utils import az_logged_in
from scripts.deploy.azure_provider import AzureCliProvider
from scripts.deploy.errors import ConfigConflictError, EnvValidationError, StateMissingError
from scripts.deploy.state_store import load_state, resolve_teardown_state_path
from scripts.deploy.teardown import TeardownMode, TeardownTarget, run_teardown, select_mode


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


def prompt_yes_no(question: str, *, default: bool = False) -> bool:
    suffix = "(Y/n)" if default else "(y/N)"
    try:
        ans = input(f"{question} {suffix} ").strip().lower()
    except EOFError:
        return False
    if not ans:
        return default
    return ans in {"y", "yes"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Destroy Azure resources created by fleet_deploy.py",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--yes", action="store_true", help="Skip interactive prompt")
    parser.add_argument(
        "--keep-rg",
        action="store_true",
        help="Do NOT delete the resource group. Instead deletes contained resources best-effort.",
    )
    parser.add_argument(
        "--keep-storage",
        action="store_true",
        help="With --keep-rg, keep the persistent storage (storage account + file shares).",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Use a specific env file (default: ./generated/.env then ./.env)",
    )
    return parser


def confirm(target: TeardownTarget, mode: TeardownMode) -> bool:
    print(f"About to destroy Azure resources in resource group: {target.resource_group}")
    print(f"Mode: {mode.describe()}")
    return prompt_yes_no("Continue?")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        mode = select_mode(keep_rg=args.keep_rg, keep_storage=args.keep_storage)
    except ConfigConflictError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        state_path = resolve_teardown_state_path(args.env_file, cwd=Path.cwd())
        state = load_state(state_path)
        print(f"[env] Loaded env file: {state_path}")
        target = TeardownTarget.from_state(state, context=str(state_path))
    except StateMissingError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    except EnvValidationError as e:
        print(e.format(), file=sys.stderr)
        return EXIT_ERROR

    if not az_logged_in():
        print("ERROR: Not logged into Azure. Run: az login", file=sys.stderr)
        return EXIT_ERROR

    provider = AzureCliProvider(target.resource_group)
    if not provider.group_exists():
        print(f"[destroy] Resource group does not exist (nothing to destroy): {target.resource_group}")
        return EXIT_OK

    if not args.yes and not confirm(target, mode):
        print("Aborted.")
        return EXIT_OK

    try:
        report = run_teardown(provider, target, mode)
    except subprocess.CalledProcessError as e:
        detail = str(getattr(e, "stderr", "") or "").strip() or str(e)
        print(f"❌ [destroy] Resource group delete failed: {detail}", file=sys.stderr)
        return EXIT_ERROR

    print()
    for line in report.summary_lines():
        print(line)

    if mode is not TeardownMode.FULL:
        if report.failures:
            print(f"⚠️  [destroy] {len(report.failures)} step(s) failed; see warnings above.", file=sys.stderr)
        print("[done] Remaining resources (if any) can be removed by deleting the resource group:")
        print(f'    az group delete -n "{target.resource_group}" --yes --no-wait')
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
