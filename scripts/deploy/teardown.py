"""Teardown of a deployed fleet.

Modes:
- FULL: delete the resource group (fire-and-forget, --no-wait). Nothing else runs.
- KEEP_RG: best-effort delete of everything inside the resource group.
- KEEP_RG_KEEP_STORAGE: as KEEP_RG, but the storage account and file shares are kept.

Every per-resource deletion in the KEEP_RG modes is best-effort: a failure is
recorded in the TeardownReport and the sequence carries on.
"""

from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from scripts.deploy.env_schema import FLEET_SCHEMA, EnvKeySpec, VarsEnum, get_spec, validate_required
from scripts.deploy.errors import ConfigConflictError
from scripts.deploy.fleet_config import InstanceNames, instance_names, names_for_container, parse_container_count


DEFAULT_APP_NAME = get_spec(FLEET_SCHEMA, VarsEnum.APP_NAME).default or ""


class TeardownMode(str, Enum):
    FULL = "full"
    KEEP_RG = "keep-rg"
    KEEP_RG_KEEP_STORAGE = "keep-rg+keep-storage"

    def describe(self) -> str:
        if self is TeardownMode.FULL:
            return "delete resource group (recommended)"
        if self is TeardownMode.KEEP_RG:
            return "keep-rg (best-effort delete resources inside the RG)"
        return "keep-rg + keep-storage (apps/env/logs removed; storage is preserved)"


def select_mode(*, keep_rg: bool, keep_storage: bool) -> TeardownMode:
    if keep_storage and not keep_rg:
        raise ConfigConflictError(
            "--keep-storage requires --keep-rg (storage cannot be kept if the whole resource group is deleted)."
        )
    if keep_rg and keep_storage:
        return TeardownMode.KEEP_RG_KEEP_STORAGE
    if keep_rg:
        return TeardownMode.KEEP_RG
    return TeardownMode.FULL


TEARDOWN_REQUIRED: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=VarsEnum.RESOURCE_GROUP, mandatory=True),
    EnvKeySpec(key=VarsEnum.ENVIRONMENT_NAME, mandatory=True),
)


@dataclass(frozen=True)
class TeardownTarget:
    app_name: str
    resource_group: str
    environment_name: str
    log_workspace_name: str
    storage_account: str
    container_count: int | None

    @classmethod
    def from_state(cls, state: Mapping[str, str], *, context: str = "state") -> "TeardownTarget":
        validate_required(TEARDOWN_REQUIRED, state, context=context)
        app_name = str(state.get(VarsEnum.APP_NAME.value) or "").strip() or DEFAULT_APP_NAME
        log_workspace = (
            str(state.get(VarsEnum.LOGWORKSPACE_NAME.value) or "").strip() or f"{app_name}-logworkspace"
        )
        return cls(
            app_name=app_name,
            resource_group=str(state[VarsEnum.RESOURCE_GROUP.value]).strip(),
            environment_name=str(state[VarsEnum.ENVIRONMENT_NAME.value]).strip(),
            log_workspace_name=log_workspace,
            storage_account=str(state.get(VarsEnum.STORAGE_ACCOUNT.value) or "").strip(),
            container_count=parse_container_count(state.get(VarsEnum.CONTAINER_COUNT.value, "")),
        )


@dataclass(frozen=True)
class StepOutcome:
    action: str
    resource: str
    ok: bool
    error: str | None = None


@dataclass
class TeardownReport:
    mode: TeardownMode
    steps: list[StepOutcome] = field(default_factory=list)
    preserved: list[str] = field(default_factory=list)

    @property
    def failures(self) -> list[StepOutcome]:
        return [s for s in self.steps if not s.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary_lines(self) -> list[str]:
        lines = [f"[destroy] mode: {self.mode.value}"]
        for s in self.steps:
            mark = "✅" if s.ok else "⚠️ "
            line = f"  {mark} {s.action}: {s.resource}"
            if s.error:
                line += f" ({s.error})"
            lines.append(line)
        for p in self.preserved:
            lines.append(f"  🔒 preserved: {p}")
        return lines


def discover_instances(provider: Any, target: TeardownTarget) -> list[InstanceNames]:
    if target.container_count is not None:
        return [instance_names(target.app_name, i) for i in range(1, target.container_count + 1)]
    print(f"[destroy] CONTAINER_COUNT not set; discovering apps by prefix '{target.app_name}'")
    return [names_for_container(name) for name in provider.list_apps_with_prefix(target.app_name)]


def _best_effort(report: TeardownReport, action: str, resource: str, fn: Callable[[], None]) -> bool:
    print(f"🗑️  [destroy] {action} (best-effort): {resource}")
    try:
        fn()
    except (subprocess.CalledProcessError, RuntimeError) as e:
        detail = str(getattr(e, "stderr", "") or "").strip() or str(e)
        print(f"⚠️  [warn] {action} failed for {resource}: {detail}", file=sys.stderr)
        report.steps.append(StepOutcome(action=action, resource=resource, ok=False, error=detail))
        return False
    report.steps.append(StepOutcome(action=action, resource=resource, ok=True))
    return True


def run_teardown(provider: Any, target: TeardownTarget, mode: TeardownMode) -> TeardownReport:
    report = TeardownReport(mode=mode)

    if mode is TeardownMode.FULL:
        print(f"🔥 [destroy] Deleting resource group: {target.resource_group}")
        provider.delete_group(no_wait=True)
        report.steps.append(StepOutcome(action="delete resource group", resource=target.resource_group, ok=True))
        print("[destroy] Delete initiated. It may take several minutes to complete.")
        return report

    instances = discover_instances(provider, target)

    for names in instances:
        _best_effort(report, "delete container app", names.container_name, lambda n=names: provider.delete_app(n.container_name))
        # Removing the link never deletes the underlying Azure Files share.
        _best_effort(
            report,
            "remove env storage link",
            names.storage_link,
            lambda n=names: provider.remove_env_storage(target.environment_name, n.storage_link),
        )

    if mode is TeardownMode.KEEP_RG:
        if target.storage_account:
            for names in instances:
                _best_effort(
                    report,
                    "delete file share",
                    names.file_share,
                    lambda n=names: provider.delete_file_share(target.storage_account, n.file_share),
                )
            _best_effort(
                report,
                "delete storage account",
                target.storage_account,
                lambda: provider.delete_storage_account(target.storage_account),
            )
        else:
            print("⚠️  [warn] STORAGE_ACCOUNT is not set in the env file; file shares/storage account were not deleted.", file=sys.stderr)
    else:
        print("🔒 [destroy] Keeping persistent storage as requested (--keep-storage).")
        if target.storage_account:
            report.preserved.append(f"storage account {target.storage_account}")
            report.preserved.extend(f"file share {n.file_share}" for n in instances)
        else:
            print(
                "⚠️  [warn] STORAGE_ACCOUNT is not set in the env file; storage should still be preserved, but nothing will be deleted.",
                file=sys.stderr,
            )

    _best_effort(
        report,
        "delete Container Apps environment",
        target.environment_name,
        lambda: provider.delete_environment(target.environment_name),
    )
    _best_effort(
        report,
        "delete Log Analytics workspace",
        target.log_workspace_name,
        lambda: provider.delete_workspace(target.log_workspace_name),
    )
    return report
