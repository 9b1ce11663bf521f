"""Converge each fleet instance: file share -> env storage link -> manifest -> app.

Steps run strictly in order per instance and each is idempotent, so a failed run
is resumed by running the deploy again.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Any

from scripts.deploy.errors import FatalProvisionError
from scripts.deploy.fleet_config import FleetConfig, InstanceNames
from scripts.deploy.manifest import ManifestValues, check_manifest_yaml, render_manifest, write_manifest
from scripts.deploy.reconciler import SharedResources


ACTION_CREATED = "created"
ACTION_UPDATED = "updated"


@dataclass(frozen=True)
class InstanceResult:
    index: int
    name: str
    share_created: bool
    link_created: bool
    action: str

    @property
    def changed(self) -> bool:
        return self.share_created or self.link_created or self.action == ACTION_CREATED


def manifest_values_for(config: FleetConfig, shared: SharedResources, names: InstanceNames) -> ManifestValues:
    return ManifestValues(
        container_name=names.container_name,
        location=config.location,
        environment_id=shared.environment_id,
        image=config.image,
        cpu=config.cpu,
        memory=config.memory,
        storage_link=names.storage_link,
        registry_host=config.registry_host,
        registry_username=config.registry_username,
        registry_password=config.registry_password,
    )


def provision_instance(
    provider: Any,
    config: FleetConfig,
    shared: SharedResources,
    names: InstanceNames,
    template_text: str,
) -> InstanceResult:
    name = names.container_name
    step = "file share"
    try:
        print(f"📁 [deploy] Ensuring file share exists: {names.file_share}")
        share_existed = provider.file_share_exists(shared.storage.name, names.file_share)
        provider.create_file_share(shared.storage.name, names.file_share)

        step = "storage link"
        print(f"🔗 [deploy] Linking share '{names.file_share}' to environment as '{names.storage_link}'")
        link_existed = provider.env_storage_exists(config.environment_name, names.storage_link)
        provider.set_env_storage(
            config.environment_name,
            names.storage_link,
            account=shared.storage.name,
            account_key=shared.storage.key,
            share=names.file_share,
        )

        step = "manifest"
        text = render_manifest(template_text, manifest_values_for(config, shared, names))
        check_manifest_yaml(text, container_name=name)
        manifest_path = write_manifest(config.generated_dir / f"{name}.yaml", text)

        step = "container app"
        if provider.app_exists(name):
            print(f"🔁 [deploy] Updating app: {name}")
            provider.update_app(name, manifest=manifest_path)
            action = ACTION_UPDATED
        else:
            print(f"🚀 [deploy] Creating app: {name}")
            provider.create_app(name, manifest=manifest_path)
            action = ACTION_CREATED
    except subprocess.CalledProcessError as e:
        detail = str(getattr(e, "stderr", "") or "").strip() or str(e)
        raise FatalProvisionError(resource=f"{name} ({step})", message=detail) from e

    return InstanceResult(
        index=names.index,
        name=name,
        share_created=not share_existed,
        link_created=not link_existed,
        action=action,
    )


def provision_fleet(provider: Any, config: FleetConfig, shared: SharedResources) -> list[InstanceResult]:
    template_text = config.template_file.read_text(encoding="utf-8")
    print(f"[deploy] Creating shares and deploying {config.container_count} apps...")
    results: list[InstanceResult] = []
    for names in config.instances():
        results.append(provision_instance(provider, config, shared, names, template_text))
    return results
