"""Resolve fleet configuration and resource names from env-style key/values.

Pure functions only: the caller supplies the merged key/value mapping (dotenv +
process env) and, optionally, the previously persisted state so that a generated
storage account name is reused instead of regenerated.
"""

from __future__ import annotations

import random
import re
import string
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from scripts.deploy.env_schema import (
    FLEET_SCHEMA,
    IMAGE_UNSET,
    STATE_KEYS,
    SecretsEnum,
    VarsEnum,
    apply_defaults,
    validate_required,
)
from scripts.deploy.errors import EnvValidationError


DEFAULT_REGISTRY = "docker.io"
ACR_SUFFIX = ".azurecr.io"
STORAGE_ACCOUNT_MAX_LEN = 24
FILE_SHARE_QUOTA_GIB = 1024


@dataclass(frozen=True)
class FleetConfig:
    app_name: str
    container_count: int
    resource_group: str
    location: str
    environment_name: str
    log_workspace_name: str
    cpu: str
    memory: str
    image: str
    registry_host: str
    registry_username: str
    registry_password: str
    storage_account: str
    template_file: Path
    generated_dir: Path

    def instance(self, index: int) -> "InstanceNames":
        return instance_names(self.app_name, index)

    def instances(self) -> list["InstanceNames"]:
        return [self.instance(i) for i in range(1, self.container_count + 1)]


@dataclass(frozen=True)
class InstanceNames:
    index: int
    container_name: str
    file_share: str
    storage_link: str


def instance_names(app_name: str, index: int) -> InstanceNames:
    return names_for_container(f"{app_name}{index}", index=index)


def names_for_container(container_name: str, *, index: int = 0) -> InstanceNames:
    return InstanceNames(
        index=index,
        container_name=container_name,
        file_share=f"{container_name}-fileshare",
        storage_link=f"{container_name}-storage",
    )


@dataclass(frozen=True)
class ResolvedState:
    """Values persisted between runs (never credentials fetched from Azure)."""

    values: Mapping[str, str]

    @classmethod
    def from_config(cls, config: FleetConfig) -> "ResolvedState":
        values = {
            VarsEnum.APP_NAME.value: config.app_name,
            VarsEnum.RESOURCE_GROUP.value: config.resource_group,
            VarsEnum.LOCATION.value: config.location,
            VarsEnum.ENVIRONMENT_NAME.value: config.environment_name,
            VarsEnum.CONTAINER_COUNT.value: str(config.container_count),
            VarsEnum.LOGWORKSPACE_NAME.value: config.log_workspace_name,
            VarsEnum.STORAGE_ACCOUNT.value: config.storage_account,
            VarsEnum.CONTAINER_IMAGE.value: config.image,
            VarsEnum.CONTAINER_CPU.value: config.cpu,
            VarsEnum.CONTAINER_MEMORY.value: config.memory,
            VarsEnum.CONTAINER_REPO.value: config.registry_host,
            VarsEnum.REPO_USERNAME.value: config.registry_username,
            SecretsEnum.REPO_PASSWORD.value: config.registry_password,
            VarsEnum.TEMPLATE_FILE.value: str(config.template_file),
            VarsEnum.GENERATED_DIR.value: str(config.generated_dir),
        }
        return cls(values={k: values[k] for k in STATE_KEYS})


def has_registry_host(ref: str) -> bool:
    first = ref.split("/", 1)[0]
    return "/" in ref and "." in first


def normalize_image_ref(ref: str) -> str:
    """Qualify Docker Hub shorthand (user/repo:tag) as docker.io/user/repo:tag."""
    ref = ref.strip()
    if "/" not in ref:
        raise EnvValidationError(
            context="CONTAINER_IMAGE",
            problems=[f"CONTAINER_IMAGE must include at least <repo>/<image>:<tag>, got {ref!r}"],
        )
    if has_registry_host(ref) or ref.startswith(f"{DEFAULT_REGISTRY}/") or f"{ACR_SUFFIX}/" in ref:
        return ref
    return f"{DEFAULT_REGISTRY}/{ref}"


def registry_host_for_image(ref: str) -> str:
    if f"{ACR_SUFFIX}/" in ref:
        return ref.split("/", 1)[0]
    if ref.startswith(f"{DEFAULT_REGISTRY}/"):
        return DEFAULT_REGISTRY
    return ref.split("/", 1)[0]


def generate_storage_account_name(app_name: str, *, rng: random.Random | None = None) -> str:
    rng = rng or random.SystemRandom()
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(rng.choice(alphabet) for _ in range(8))
    sanitized = re.sub(r"[^a-z0-9]", "", app_name.lower())
    return f"{sanitized}storage{suffix}"[:STORAGE_ACCOUNT_MAX_LEN]


def parse_container_count(raw: str) -> int | None:
    raw = str(raw or "").strip()
    if not re.fullmatch(r"[0-9]+", raw):
        return None
    count = int(raw)
    return count if count >= 1 else None


def resolve_fleet_config(
    kv: Mapping[str, str],
    *,
    previous_state: Mapping[str, str] | None = None,
    check_template: bool = True,
    base_dir: Path | None = None,
) -> FleetConfig:
    """Build a FleetConfig or raise EnvValidationError listing every problem found."""
    merged = apply_defaults(FLEET_SCHEMA, kv)
    validate_required(FLEET_SCHEMA, merged, context="fleet config")

    problems: list[str] = []

    image_raw = merged[VarsEnum.CONTAINER_IMAGE.value].strip()
    image = ""
    if image_raw == IMAGE_UNSET:
        problems.append("Set CONTAINER_IMAGE (in .env or env var) to an image that listens on port 8080.")
    else:
        try:
            image = normalize_image_ref(image_raw)
        except EnvValidationError as e:
            problems.extend(e.problems)

    count = parse_container_count(merged[VarsEnum.CONTAINER_COUNT.value])
    if count is None:
        problems.append(
            f"CONTAINER_COUNT must be a positive integer, got {merged[VarsEnum.CONTAINER_COUNT.value]!r}"
        )

    template_file = Path(merged[VarsEnum.TEMPLATE_FILE.value])
    generated_dir = Path(merged[VarsEnum.GENERATED_DIR.value])
    if base_dir is not None:
        template_file = template_file if template_file.is_absolute() else base_dir / template_file
        generated_dir = generated_dir if generated_dir.is_absolute() else base_dir / generated_dir
    if check_template and not template_file.is_file():
        problems.append(f"Template YAML not found: {template_file}")

    if problems or count is None:
        raise EnvValidationError(context="fleet config", problems=problems)

    app_name = merged[VarsEnum.APP_NAME.value].strip()

    # A generated account name must survive re-runs; regenerating it would orphan the live account.
    storage_account = str(merged.get(VarsEnum.STORAGE_ACCOUNT.value) or "").strip()
    if not storage_account and previous_state:
        storage_account = str(previous_state.get(VarsEnum.STORAGE_ACCOUNT.value) or "").strip()
    if not storage_account:
        storage_account = generate_storage_account_name(app_name)

    return FleetConfig(
        app_name=app_name,
        container_count=count,
        resource_group=merged[VarsEnum.RESOURCE_GROUP.value].strip(),
        location=merged[VarsEnum.LOCATION.value].strip(),
        environment_name=merged[VarsEnum.ENVIRONMENT_NAME.value].strip(),
        log_workspace_name=merged[VarsEnum.LOGWORKSPACE_NAME.value].strip(),
        cpu=merged[VarsEnum.CONTAINER_CPU.value].strip(),
        memory=merged[VarsEnum.CONTAINER_MEMORY.value].strip(),
        image=image,
        registry_host=registry_host_for_image(image),
        registry_username=str(merged.get(VarsEnum.REPO_USERNAME.value) or ""),
        registry_password=str(merged.get(SecretsEnum.REPO_PASSWORD.value) or ""),
        storage_account=storage_account,
        template_file=template_file,
        generated_dir=generated_dir,
    )
