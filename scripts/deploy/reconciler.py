"""Ensure the fleet's shared resources exist.

Each `ensure_*` checks existence through the provider, creates only when the
resource is absent, and returns `(handle, changed)`. Creation failures are fatal
(FatalProvisionError). Re-applying log wiring to an existing environment is
best-effort.
"""

from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass, field
from typing import Any, Callable

from scripts.deploy.errors import FatalProvisionError
from scripts.deploy.fleet_config import FleetConfig


@dataclass(frozen=True)
class LogWorkspace:
    name: str
    customer_id: str
    shared_key: str = field(repr=False)


@dataclass(frozen=True)
class StorageAccount:
    name: str
    key: str = field(repr=False)


@dataclass(frozen=True)
class SharedResources:
    environment_id: str
    workspace: LogWorkspace
    storage: StorageAccount
    changed: tuple[str, ...] = ()


def _fatal(resource: str, exc: subprocess.CalledProcessError) -> FatalProvisionError:
    detail = str(getattr(exc, "stderr", "") or "").strip() or str(exc)
    return FatalProvisionError(resource=resource, message=detail)


def ensure_resource_group(provider: Any, config: FleetConfig) -> tuple[str, bool]:
    resource = f"resource group '{config.resource_group}'"
    try:
        if provider.group_exists():
            return config.resource_group, False
        print(f"🏗️  [deploy] Creating resource group: {config.resource_group}")
        provider.create_group(location=config.location)
    except subprocess.CalledProcessError as e:
        raise _fatal(resource, e) from e
    return config.resource_group, True


def ensure_log_workspace(provider: Any, config: FleetConfig) -> tuple[LogWorkspace, bool]:
    name = config.log_workspace_name
    resource = f"Log Analytics workspace '{name}'"
    changed = False
    try:
        if not provider.workspace_exists(name):
            print(f"🏗️  [deploy] Creating Log Analytics workspace: {name}")
            provider.create_workspace(name, location=config.location)
            changed = True
        else:
            print(f"✅ [deploy] Log Analytics workspace already exists: {name}")
        # Keys are fetched on every run and only held in memory.
        customer_id = provider.workspace_customer_id(name)
        shared_key = provider.workspace_shared_key(name)
    except subprocess.CalledProcessError as e:
        raise _fatal(resource, e) from e

    if not customer_id or not shared_key:
        raise FatalProvisionError(resource=resource, message="could not read customerId/shared key")
    return LogWorkspace(name=name, customer_id=customer_id, shared_key=shared_key), changed


def ensure_environment(provider: Any, config: FleetConfig, workspace: LogWorkspace) -> tuple[str, bool]:
    name = config.environment_name
    resource = f"Container Apps environment '{name}'"
    changed = False
    try:
        exists = provider.environment_exists(name)
        if not exists:
            print(f"🏗️  [deploy] Creating Container Apps environment: {name}")
            provider.create_environment(
                name,
                location=config.location,
                customer_id=workspace.customer_id,
                shared_key=workspace.shared_key,
            )
            changed = True
    except subprocess.CalledProcessError as e:
        raise _fatal(resource, e) from e

    if exists:
        print(f"✅ [deploy] Container Apps environment already exists: {name} (re-applying log wiring)")
        try:
            provider.update_environment_logs(
                name, customer_id=workspace.customer_id, shared_key=workspace.shared_key
            )
        except subprocess.CalledProcessError as e:
            print(f"⚠️  [warn] Could not update log wiring for {name} ({e}); continuing.", file=sys.stderr)

    try:
        environment_id = provider.environment_id(name)
    except subprocess.CalledProcessError as e:
        raise _fatal(resource, e) from e
    if not environment_id:
        raise FatalProvisionError(resource=resource, message="could not read environment id")
    return environment_id, changed


def ensure_storage_account(
    provider: Any, config: FleetConfig, *, on_created: Callable[[], None] | None = None
) -> tuple[StorageAccount, bool]:
    """`on_created` runs right after a new account is created, before its key is read."""
    name = config.storage_account
    resource = f"storage account '{name}'"
    changed = False
    try:
        if not provider.storage_account_exists(name):
            print(f"🏗️  [deploy] Creating storage account: {name}")
            provider.create_storage_account(name, location=config.location)
            changed = True
            if on_created is not None:
                on_created()
        else:
            print(f"✅ [deploy] Storage account already exists: {name}")
        key = provider.storage_account_key(name)
    except subprocess.CalledProcessError as e:
        raise _fatal(resource, e) from e

    if not key:
        raise FatalProvisionError(resource=resource, message="could not read account key")
    return StorageAccount(name=name, key=key), changed


def reconcile_shared_resources(
    provider: Any, config: FleetConfig, *, on_storage_created: Callable[[], None] | None = None
) -> SharedResources:
    try:
        provider.register_providers()
    except subprocess.CalledProcessError as e:
        raise _fatal("resource provider registration", e) from e

    changed: list[str] = []

    _, rg_changed = ensure_resource_group(provider, config)
    if rg_changed:
        changed.append(f"resource-group:{config.resource_group}")

    workspace, ws_changed = ensure_log_workspace(provider, config)
    if ws_changed:
        changed.append(f"log-workspace:{workspace.name}")

    environment_id, env_changed = ensure_environment(provider, config, workspace)
    if env_changed:
        changed.append(f"environment:{config.environment_name}")

    storage, sa_changed = ensure_storage_account(provider, config, on_created=on_storage_created)
    if sa_changed:
        changed.append(f"storage-account:{storage.name}")

    return SharedResources(
        environment_id=environment_id,
        workspace=workspace,
        storage=storage,
        changed=tuple(changed),
    )
