#!/usr/bin/env python3
"""Shared Azure CLI utilities."""

from __future__ import annotations

import json
import shutil
import subprocess
import sys
from typing import Iterable


MASK = "***"


def _masked(cmd: list[str], secrets: Iterable[str]) -> list[str]:
    hidden = {s for s in secrets if s}
    return [MASK if part in hidden else part for part in cmd]


def run_az_command(
    args: list[str],
    *,
    capture_output: bool = True,
    ignore_errors: bool = False,
    verbose: bool = True,
    secrets: Iterable[str] = (),
) -> dict | list | str | None:
    """Run an azure cli command.

    Values listed in `secrets` are replaced with `***` in the printed command
    and in the CalledProcessError raised on failure.
    """
    secrets = tuple(secrets)
    cmd = ["az"] + args
    if verbose:
        print(f"[az] {' '.join(_masked(cmd, secrets))}")

    # Check if az is installed
    if not shutil.which("az"):
        if ignore_errors:
            return None
        raise RuntimeError("Azure CLI (az) not found. Please install it.")

    result = subprocess.run(
        cmd,
        stdout=subprocess.PIPE if capture_output else None,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )

    if result.returncode != 0:
        if ignore_errors:
            return None

        if result.stdout:
            print(result.stdout.rstrip(), file=sys.stderr)
        if result.stderr:
            print(result.stderr.rstrip(), file=sys.stderr)

        raise subprocess.CalledProcessError(
            result.returncode, _masked(cmd, secrets), output=result.stdout, stderr=result.stderr
        )

    if capture_output and result.stdout:
        out = result.stdout.strip()
        if not out:
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError:
            return out

    return None


def az_succeeds(args: list[str]) -> bool:
    """Return True if the az command exits 0 (used for existence checks)."""
    try:
        run_az_command(args, capture_output=True, verbose=False)
        return True
    except subprocess.CalledProcessError:
        return False


def az_tsv(args: list[str], *, secrets: Iterable[str] = (), verbose: bool = True) -> str:
    """Run an az query with `-o tsv` and return the stripped text output."""
    res = run_az_command([*args, "-o", "tsv"], capture_output=True, verbose=verbose, secrets=secrets)
    return str(res or "").strip()


def az_logged_in() -> bool:
    if not shutil.which("az"):
        return False
    return az_succeeds(["account", "show", "--output", "none"])


def get_az_account_info() -> dict[str, str]:
    """Return dictionary with 'id' (subscription) and 'tenantId'."""
    try:
        res = run_az_command(["account", "show", "--output", "json"], capture_output=True, verbose=False)
    except (subprocess.CalledProcessError, RuntimeError):
        return {"id": "", "tenantId": ""}
    if isinstance(res, dict):
        return {
            "id": str(res.get("id") or ""),
            "tenantId": str(res.get("tenantId") or ""),
        }
    return {"id": "", "tenantId": ""}
