from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).parents[2]


def pytest_configure() -> None:
    # Allow tests to import `scripts.*` as a package.
    sys.path.append(str(REPO_ROOT))


def az_error(stderr: str = "boom") -> subprocess.CalledProcessError:
    return subprocess.CalledProcessError(1, ["az"], output="", stderr=stderr)


class FakeProvider:
    """In-memory stand-in for AzureCliProvider.

    Every call is recorded in `calls` as (method, args...). `fail_on` maps a
    method name to the exception it should raise.
    """

    def __init__(self, resource_group: str = "rg", *, group: bool = False):
        self.resource_group = resource_group
        self.group = group
        self.workspaces: set[str] = set()
        self.environments: set[str] = set()
        self.accounts: set[str] = set()
        self.shares: set[tuple[str, str]] = set()
        self.links: set[tuple[str, str]] = set()
        self.apps: dict[str, Path] = {}
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}

    def _call(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if method in self.fail_on:
            raise self.fail_on[method]

    def names(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    def mutating_calls(self) -> list[tuple]:
        prefixes = ("create_", "delete_", "set_", "remove_", "update_app")
        return [c for c in self.calls if c[0].startswith(prefixes)]

    def register_providers(self) -> None:
        self._call("register_providers")

    def group_exists(self) -> bool:
        self._call("group_exists")
        return self.group

    def create_group(self, *, location: str) -> None:
        self._call("create_group", location)
        self.group = True

    def delete_group(self, *, no_wait: bool = True) -> None:
        self._call("delete_group", no_wait)
        self.group = False

    def workspace_exists(self, name: str) -> bool:
        self._call("workspace_exists", name)
        return name in self.workspaces

    def create_workspace(self, name: str, *, location: str) -> None:
        self._call("create_workspace", name)
        self.workspaces.add(name)

    def workspace_customer_id(self, name: str) -> str:
        self._call("workspace_customer_id", name)
        return f"cid-{name}" if name in self.workspaces else ""

    def workspace_shared_key(self, name: str) -> str:
        self._call("workspace_shared_key", name)
        return "ws-key" if name in self.workspaces else ""

    def delete_workspace(self, name: str) -> None:
        self._call("delete_workspace", name)
        self.workspaces.discard(name)

    def environment_exists(self, name: str) -> bool:
        self._call("environment_exists", name)
        return name in self.environments

    def create_environment(self, name: str, *, location: str, customer_id: str, shared_key: str) -> None:
        self._call("create_environment", name)
        self.environments.add(name)

    def update_environment_logs(self, name: str, *, customer_id: str, shared_key: str) -> None:
        self._call("update_environment_logs", name)

    def environment_id(self, name: str) -> str:
        self._call("environment_id", name)
        return f"/subscriptions/sub/resourceGroups/{self.resource_group}/providers/Microsoft.App/managedEnvironments/{name}"

    def delete_environment(self, name: str) -> None:
        self._call("delete_environment", name)
        self.environments.discard(name)

    def storage_account_exists(self, name: str) -> bool:
        self._call("storage_account_exists", name)
        return name in self.accounts

    def create_storage_account(self, name: str, *, location: str) -> None:
        self._call("create_storage_account", name)
        self.accounts.add(name)

    def storage_account_key(self, name: str) -> str:
        self._call("storage_account_key", name)
        return "sa-key" if name in self.accounts else ""

    def delete_storage_account(self, name: str) -> None:
        self._call("delete_storage_account", name)
        self.accounts.discard(name)

    def file_share_exists(self, account: str, share: str) -> bool:
        self._call("file_share_exists", account, share)
        return (account, share) in self.shares

    def create_file_share(self, account: str, share: str) -> None:
        self._call("create_file_share", account, share)
        self.shares.add((account, share))

    def delete_file_share(self, account: str, share: str) -> None:
        self._call("delete_file_share", account, share)
        self.shares.discard((account, share))

    def env_storage_exists(self, environment: str, storage_link: str) -> bool:
        self._call("env_storage_exists", environment, storage_link)
        return (environment, storage_link) in self.links

    def set_env_storage(self, environment: str, storage_link: str, *, account: str, account_key: str, share: str) -> None:
        self._call("set_env_storage", environment, storage_link, share)
        self.links.add((environment, storage_link))

    def remove_env_storage(self, environment: str, storage_link: str) -> None:
        self._call("remove_env_storage", environment, storage_link)
        self.links.discard((environment, storage_link))

    def app_exists(self, name: str) -> bool:
        self._call("app_exists", name)
        return name in self.apps

    def create_app(self, name: str, *, manifest: Path) -> None:
        self._call("create_app", name)
        self.apps[name] = manifest

    def update_app(self, name: str, *, manifest: Path) -> None:
        self._call("update_app", name)
        self.apps[name] = manifest

    def delete_app(self, name: str) -> None:
        self._call("delete_app", name)
        self.apps.pop(name, None)

    def list_apps_with_prefix(self, prefix: str) -> list[str]:
        self._call("list_apps_with_prefix", prefix)
        return sorted(n for n in self.apps if n.startswith(prefix))


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """A working directory holding a copy of the app template."""
    (tmp_path / "template").mkdir()
    shutil.copy(REPO_ROOT / "template" / "app.template.yaml", tmp_path / "template" / "app.template.yaml")
    return tmp_path


@pytest.fixture
def fleet_config(workdir: Path):
    from scripts.deploy.fleet_config import resolve_fleet_config

    return resolve_fleet_config(
        {
            "APP_NAME": "fleet",
            "CONTAINER_IMAGE": "acme/web:1.0",
            "CONTAINER_COUNT": "3",
            "STORAGE_ACCOUNT": "fleetstorage01",
        },
        base_dir=workdir,
    )
