"""Azure CLI command surface for the fleet's resource kinds.

Every method is a single synchronous `az` call. `*_exists` methods return False
on a non-zero exit; everything else raises subprocess.CalledProcessError and
leaves the fatal/best-effort decision to the caller.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from scripts.azure_utils import az_succeeds, az_tsv, run_az_command
from scripts.deploy.fleet_config import FILE_SHARE_QUOTA_GIB


REQUIRED_PROVIDER_NAMESPACES = ("Microsoft.App", "Microsoft.OperationalInsights")

_SHARE_EXISTS_MARKERS = ("ShareAlreadyExists", "already exists")


class AzureCliProvider:
    def __init__(self, resource_group: str):
        self.resource_group = resource_group

    def _rg(self) -> list[str]:
        return ["--resource-group", self.resource_group]

    # Subscription / resource group

    def register_providers(self) -> None:
        for namespace in REQUIRED_PROVIDER_NAMESPACES:
            run_az_command(["provider", "register", "--namespace", namespace, "--wait"], capture_output=False)

    def group_exists(self) -> bool:
        return az_succeeds(["group", "show", "--name", self.resource_group])

    def create_group(self, *, location: str) -> None:
        run_az_command(["group", "create", "--name", self.resource_group, "--location", location, "-o", "none"])

    def delete_group(self, *, no_wait: bool = True) -> None:
        args = ["group", "delete", "--name", self.resource_group, "--yes"]
        if no_wait:
            args.append("--no-wait")
        run_az_command(args, capture_output=False)

    # Log Analytics workspace

    def workspace_exists(self, name: str) -> bool:
        return az_succeeds(["monitor", "log-analytics", "workspace", "show", *self._rg(), "--workspace-name", name])

    def create_workspace(self, name: str, *, location: str) -> None:
        run_az_command(
            [
                "monitor",
                "log-analytics",
                "workspace",
                "create",
                *self._rg(),
                "--workspace-name",
                name,
                "--location",
                location,
                "-o",
                "none",
            ]
        )

    def workspace_customer_id(self, name: str) -> str:
        return az_tsv(
            ["monitor", "log-analytics", "workspace", "show", *self._rg(), "--workspace-name", name, "--query", "customerId"]
        )

    def workspace_shared_key(self, name: str) -> str:
        return az_tsv(
            [
                "monitor",
                "log-analytics",
                "workspace",
                "get-shared-keys",
                *self._rg(),
                "--workspace-name",
                name,
                "--query",
                "primarySharedKey",
            ],
            verbose=False,
        )

    def delete_workspace(self, name: str) -> None:
        run_az_command(
            ["monitor", "log-analytics", "workspace", "delete", *self._rg(), "--workspace-name", name, "--yes"],
            capture_output=False,
        )

    # Container Apps environment

    def environment_exists(self, name: str) -> bool:
        return az_succeeds(["containerapp", "env", "show", *self._rg(), "--name", name])

    def _logs_args(self, customer_id: str, shared_key: str) -> list[str]:
        return [
            "--logs-destination",
            "log-analytics",
            "--logs-workspace-id",
            customer_id,
            "--logs-workspace-key",
            shared_key,
        ]

    def create_environment(self, name: str, *, location: str, customer_id: str, shared_key: str) -> None:
        run_az_command(
            [
                "containerapp",
                "env",
                "create",
                *self._rg(),
                "--name",
                name,
                "--location",
                location,
                *self._logs_args(customer_id, shared_key),
                "-o",
                "none",
            ],
            secrets=[shared_key],
        )

    def update_environment_logs(self, name: str, *, customer_id: str, shared_key: str) -> None:
        run_az_command(
            ["containerapp", "env", "update", *self._rg(), "--name", name, *self._logs_args(customer_id, shared_key), "-o", "none"],
            secrets=[shared_key],
        )

    def environment_id(self, name: str) -> str:
        return az_tsv(["containerapp", "env", "show", *self._rg(), "--name", name, "--query", "id"])

    def delete_environment(self, name: str) -> None:
        run_az_command(["containerapp", "env", "delete", *self._rg(), "--name", name, "--yes"], capture_output=False)

    # Storage account + file shares

    def storage_account_exists(self, name: str) -> bool:
        return az_succeeds(["storage", "account", "show", *self._rg(), "--name", name])

    def create_storage_account(self, name: str, *, location: str) -> None:
        run_az_command(
            [
                "storage",
                "account",
                "create",
                *self._rg(),
                "--name",
                name,
                "--location",
                location,
                "--kind",
                "StorageV2",
                "--sku",
                "Standard_LRS",
                "--enable-large-file-share",
                "-o",
                "none",
            ]
        )

    def storage_account_key(self, name: str) -> str:
        return az_tsv(
            ["storage", "account", "keys", "list", *self._rg(), "--account-name", name, "--query", "[0].value"],
            verbose=False,
        )

    def delete_storage_account(self, name: str) -> None:
        run_az_command(["storage", "account", "delete", *self._rg(), "--name", name, "--yes"], capture_output=False)

    def file_share_exists(self, account: str, share: str) -> bool:
        return az_succeeds(["storage", "share-rm", "show", *self._rg(), "--storage-account", account, "--name", share])

    def create_file_share(self, account: str, share: str) -> None:
        """Create the share; an already-existing share is not an error."""
        try:
            run_az_command(
                [
                    "storage",
                    "share-rm",
                    "create",
                    *self._rg(),
                    "--storage-account",
                    account,
                    "--name",
                    share,
                    "--quota",
                    str(FILE_SHARE_QUOTA_GIB),
                    "--enabled-protocols",
                    "SMB",
                    "-o",
                    "none",
                ]
            )
        except subprocess.CalledProcessError as e:
            err = str(getattr(e, "stderr", "") or "")
            if any(marker in err for marker in _SHARE_EXISTS_MARKERS):
                return
            raise

    def delete_file_share(self, account: str, share: str) -> None:
        run_az_command(
            ["storage", "share-rm", "delete", *self._rg(), "--storage-account", account, "--name", share, "-o", "none"],
            capture_output=False,
        )

    # Environment storage links

    def env_storage_exists(self, environment: str, storage_link: str) -> bool:
        return az_succeeds(
            ["containerapp", "env", "storage", "show", *self._rg(), "--name", environment, "--storage-name", storage_link]
        )

    def set_env_storage(
        self, environment: str, storage_link: str, *, account: str, account_key: str, share: str
    ) -> None:
        run_az_command(
            [
                "containerapp",
                "env",
                "storage",
                "set",
                "--access-mode",
                "ReadWrite",
                "--azure-file-account-name",
                account,
                "--azure-file-account-key",
                account_key,
                "--azure-file-share-name",
                share,
                "--storage-name",
                storage_link,
                "--name",
                environment,
                *self._rg(),
                "-o",
                "none",
            ],
            secrets=[account_key],
        )

    def remove_env_storage(self, environment: str, storage_link: str) -> None:
        run_az_command(
            [
                "containerapp",
                "env",
                "storage",
                "remove",
                *self._rg(),
                "--name",
                environment,
                "--storage-name",
                storage_link,
                "--yes",
                "-o",
                "none",
            ],
            capture_output=False,
        )

    # Container apps

    def app_exists(self, name: str) -> bool:
        return az_succeeds(["containerapp", "show", *self._rg(), "--name", name])

    def create_app(self, name: str, *, manifest: Path) -> None:
        run_az_command(["containerapp", "create", *self._rg(), "--name", name, "--yaml", str(manifest), "-o", "none"])

    def update_app(self, name: str, *, manifest: Path) -> None:
        run_az_command(["containerapp", "update", *self._rg(), "--name", name, "--yaml", str(manifest), "-o", "none"])

    def delete_app(self, name: str) -> None:
        run_az_command(["containerapp", "delete", *self._rg(), "--name", name, "--yes"], capture_output=False)

    def list_apps_with_prefix(self, prefix: str) -> list[str]:
        res = run_az_command(
            ["containerapp", "list", *self._rg(), "--query", f"[?starts_with(name, '{prefix}')].name", "-o", "json"],
            ignore_errors=True,
        )
        if not isinstance(res, list):
            return []
        return sorted(str(n) for n in res if str(n).strip())
