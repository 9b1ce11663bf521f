#!/usr/bin/env python3
"""Deploy N public Azure Container Apps (${APP_NAME}1..N) with per-app Azure Files storage.

What it does:
- Loads ./.env if present (process environment variables take precedence).
- Creates/uses a Log Analytics workspace.
- Creates/updates a Container Apps environment wired to Log Analytics.
- Creates/uses a Storage Account and creates one Azure File share per app.
- Generates per-app YAMLs under ./generated/ and creates/updates the apps.
- Writes resolved state to ./generated/.env (used by fleet_destroy.py).

Re-running with the same configuration converges the existing resources; a
generated storage account name is recalled from ./generated/.env.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Mapping

from scripts.azure_utils import az_logged_in, get_az_account_info
from scripts.deploy.azure_provider import AzureCliProvider
from scripts.deploy.env_schema import (
    FLEET_SCHEMA,
    VarsEnum,
    apply_defaults,
    env_subset,
    parse_dotenv_file,
    unknown_keys,
)
from scripts.deploy.errors import EnvValidationError, FatalProvisionError
from scripts.deploy.fleet_config import FleetConfig, ResolvedState, resolve_fleet_config
from scripts.deploy.provisioner import ACTION_CREATED, InstanceResult, provision_fleet
from scripts.deploy.reconciler import reconcile_shared_resources
from scripts.deploy.state_store import read_previous_state, save_state, state_path_for


def load_input_env(env_path: Path, environ: Mapping[str, str]) -> dict[str, str]:
    """Merge the optional dotenv file with schema keys from the process environment."""
    kv: dict[str, str] = {}
    if env_path.is_file():
        kv = parse_dotenv_file(env_path)
        print(f"[env] Loaded {env_path}")
        extra = unknown_keys(FLEET_SCHEMA, kv)
        if extra:
            print(f"⚠️  [warn] Ignoring unknown key(s) in {env_path.name}: {', '.join(extra)}", file=sys.stderr)
    kv.update(env_subset(environ, FLEET_SCHEMA))
    return kv


def resolve_config(kv: dict[str, str], *, cwd: Path) -> FleetConfig:
    generated_dir = Path(apply_defaults(FLEET_SCHEMA, kv)[VarsEnum.GENERATED_DIR.value])
    if not generated_dir.is_absolute():
        generated_dir = cwd / generated_dir
    previous = read_previous_state(generated_dir)
    if previous:
        print(f"[state] Found previous state: {state_path_for(generated_dir)}")
    return resolve_fleet_config(kv, previous_state=previous, base_dir=cwd)


def deploy(provider: AzureCliProvider, config: FleetConfig) -> list[InstanceResult]:
    """Reconcile shared resources, converge every instance, then persist state.

    State is also written as soon as a new storage account is created, so its
    (possibly generated) name survives a later failure in the same run.
    """
    state_path = state_path_for(config.generated_dir)

    def persist() -> None:
        save_state(state_path, ResolvedState.from_config(config))

    shared = reconcile_shared_resources(provider, config, on_storage_created=persist)
    if shared.changed:
        print(f"[deploy] Created shared resources: {', '.join(shared.changed)}")
    results = provision_fleet(provider, config, shared)
    persist()
    return results


def _print_summary(config: FleetConfig, results: list[InstanceResult]) -> None:
    created = [r.name for r in results if r.action == ACTION_CREATED]
    updated = [r.name for r in results if r.action != ACTION_CREATED]
    unchanged = [r.name for r in results if not r.changed]
    print("\n[done] Deployed.")
    print(f"  Resource group: {config.resource_group}")
    print(f"  Environment:    {config.environment_name}")
    print(f"  Storage:        {config.storage_account}")
    print(f"  Apps created:   {', '.join(created) or '-'}")
    print(f"  Apps updated:   {', '.join(updated) or '-'}")
    print(f"  Unchanged:      {', '.join(unchanged) or '-'}")
    print(f"  Generated YAMLs are in {config.generated_dir}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Deploy N Azure Container Apps with per-app Azure Files storage")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Dotenv file with deploy settings (default: ./.env). Process environment variables take precedence.",
    )
    args = parser.parse_args(argv)

    cwd = Path.cwd()
    env_path = Path(args.env_file).expanduser()
    if not env_path.is_absolute():
        env_path = cwd / env_path

    try:
        kv = load_input_env(env_path, os.environ)
        config = resolve_config(kv, cwd=cwd)
    except EnvValidationError as e:
        print(e.format(), file=sys.stderr)
        return 1

    print(f"[deploy] Image: {config.image} (registry: {config.registry_host})")
    print(f"[deploy] Fleet: {config.app_name}1..{config.app_name}{config.container_count} in {config.resource_group}")

    if not az_logged_in():
        print("ERROR: Not logged into Azure. Run: az login", file=sys.stderr)
        return 1
    account = get_az_account_info()
    if account["id"]:
        print(f"[az] subscription: {account['id']}")

    provider = AzureCliProvider(config.resource_group)
    try:
        results = deploy(provider, config)
    except FatalProvisionError as e:
        print(e.format(), file=sys.stderr)
        return 1

    _print_summary(config, results)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
