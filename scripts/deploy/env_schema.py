"""Deterministic environment variable schema for fleet deploy/destroy.

This module is the single source of truth for:
- which keys exist (vars vs secrets)
- where they are expected to live (input `.env`, persisted state `generated/.env`)
- whether they are mandatory and/or have defaults

Defaults may reference keys declared earlier in the schema using
`str.format` syntax, e.g. `{APP_NAME}-resource`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from dotenv import dotenv_values

from scripts.deploy.errors import EnvValidationError


class EnvTarget(str, Enum):
    DOTENV_INPUT = "dotenv_input"  # `.env` (operator supplied)
    STATE_FILE = "state_file"  # `generated/.env` (written by fleet_deploy)


class VarsEnum(str, Enum):
    APP_NAME = "APP_NAME"

    # Image / registry
    CONTAINER_IMAGE = "CONTAINER_IMAGE"
    CONTAINER_REPO = "CONTAINER_REPO"
    REPO_USERNAME = "REPO_USERNAME"

    # Placement
    RESOURCE_GROUP = "RESOURCE_GROUP"
    LOCATION = "LOCATION"
    ENVIRONMENT_NAME = "ENVIRONMENT_NAME"
    LOGWORKSPACE_NAME = "LOGWORKSPACE_NAME"

    # Fleet size / sizing
    CONTAINER_COUNT = "CONTAINER_COUNT"
    CONTAINER_CPU = "CONTAINER_CPU"
    CONTAINER_MEMORY = "CONTAINER_MEMORY"

    # Storage
    STORAGE_ACCOUNT = "STORAGE_ACCOUNT"

    # Local files
    TEMPLATE_FILE = "TEMPLATE_FILE"
    GENERATED_DIR = "GENERATED_DIR"


class SecretsEnum(str, Enum):
    REPO_PASSWORD = "REPO_PASSWORD"


IMAGE_UNSET = "REPLACE_ME"

_INPUT_AND_STATE = frozenset({EnvTarget.DOTENV_INPUT, EnvTarget.STATE_FILE})


@dataclass(frozen=True)
class EnvKeySpec:
    key: VarsEnum | SecretsEnum
    mandatory: bool
    default: str | None = None
    targets: frozenset[EnvTarget] = frozenset()


FLEET_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=VarsEnum.APP_NAME, mandatory=True, default="yftraining", targets=_INPUT_AND_STATE),
    EnvKeySpec(key=VarsEnum.RESOURCE_GROUP, mandatory=True, default="{APP_NAME}-resource", targets=_INPUT_AND_STATE),
    EnvKeySpec(key=VarsEnum.LOCATION, mandatory=True, default="centralus", targets=_INPUT_AND_STATE),
    EnvKeySpec(
        key=VarsEnum.ENVIRONMENT_NAME, mandatory=True, default="{APP_NAME}-environment", targets=_INPUT_AND_STATE
    ),
    EnvKeySpec(key=VarsEnum.CONTAINER_COUNT, mandatory=True, default="10", targets=_INPUT_AND_STATE),
    EnvKeySpec(
        key=VarsEnum.LOGWORKSPACE_NAME, mandatory=True, default="{APP_NAME}-logworkspace", targets=_INPUT_AND_STATE
    ),
    EnvKeySpec(key=VarsEnum.STORAGE_ACCOUNT, mandatory=False, default=None, targets=_INPUT_AND_STATE),
    # REPLACE_ME is a sentinel: it satisfies "present" but is rejected by the resolver.
    EnvKeySpec(key=VarsEnum.CONTAINER_IMAGE, mandatory=True, default=IMAGE_UNSET, targets=_INPUT_AND_STATE),
    EnvKeySpec(key=VarsEnum.CONTAINER_CPU, mandatory=True, default="2.0", targets=_INPUT_AND_STATE),
    EnvKeySpec(key=VarsEnum.CONTAINER_MEMORY, mandatory=True, default="4Gi", targets=_INPUT_AND_STATE),
    # Derived from CONTAINER_IMAGE; only ever written to state.
    EnvKeySpec(key=VarsEnum.CONTAINER_REPO, mandatory=False, default=None, targets=frozenset({EnvTarget.STATE_FILE})),
    EnvKeySpec(key=VarsEnum.REPO_USERNAME, mandatory=False, default=None, targets=_INPUT_AND_STATE),
    EnvKeySpec(key=SecretsEnum.REPO_PASSWORD, mandatory=False, default=None, targets=_INPUT_AND_STATE),
    EnvKeySpec(
        key=VarsEnum.TEMPLATE_FILE, mandatory=True, default="template/app.template.yaml", targets=_INPUT_AND_STATE
    ),
    EnvKeySpec(key=VarsEnum.GENERATED_DIR, mandatory=True, default="generated", targets=_INPUT_AND_STATE),
)


def _schema_keys(schema: Iterable[EnvKeySpec]) -> set[str]:
    return {spec.key.value for spec in schema}


def filter_schema_by_targets(schema: Iterable[EnvKeySpec], *, include: set[EnvTarget]) -> list[EnvKeySpec]:
    return [spec for spec in schema if spec.targets.intersection(include)]


# Persisted state keys, in file order.
STATE_KEYS: tuple[str, ...] = tuple(
    spec.key.value for spec in filter_schema_by_targets(FLEET_SCHEMA, include={EnvTarget.STATE_FILE})
)


def parse_dotenv_file(path: Path) -> dict[str, str]:
    """Parse dotenv file strictly.

    - Comments are ignored.
    - Keys are preserved even if they have empty values (""), so callers can tell
      "set but empty" from "absent".
    """
    kv: dict[str, str] = {}
    raw = dotenv_values(path)
    for k, v in raw.items():
        if k is None:
            continue
        key = str(k).strip()
        if not key:
            continue
        val = "" if v is None else str(v).strip()
        kv[key] = val
    return kv


def env_subset(environ: Mapping[str, str], schema: Iterable[EnvKeySpec]) -> dict[str, str]:
    """Pick non-empty schema keys out of a process environment mapping."""
    out: dict[str, str] = {}
    for k in sorted(_schema_keys(schema)):
        v = environ.get(k)
        if v is None:
            continue
        v = str(v).strip()
        if not v:
            continue
        out[k] = v
    return out


def unknown_keys(schema: Iterable[EnvKeySpec], kv: Mapping[str, str]) -> list[str]:
    allowed = _schema_keys(schema)
    return sorted([k for k in kv.keys() if k not in allowed])


def apply_defaults(schema: Iterable[EnvKeySpec], kv: Mapping[str, str]) -> dict[str, str]:
    out = dict(kv)
    for spec in schema:
        if spec.key.value in out and str(out.get(spec.key.value) or "").strip():
            continue
        if spec.default is None:
            continue
        out[spec.key.value] = spec.default.format_map(out)
    return out


def validate_required(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    missing: list[str] = []
    for spec in schema:
        if not spec.mandatory:
            continue
        val = str(kv.get(spec.key.value) or "").strip()
        if not val:
            missing.append(spec.key.value)
    if missing:
        raise EnvValidationError(context=context, problems=["Missing mandatory key(s): " + ", ".join(sorted(missing))])


def get_spec(schema: Iterable[EnvKeySpec], key: VarsEnum | SecretsEnum) -> EnvKeySpec:
    for spec in schema:
        if spec.key == key:
            return spec
    raise KeyError(key)
