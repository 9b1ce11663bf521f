from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from scripts.deploy.errors import ManifestRenderError


@dataclass(frozen=True)
class ManifestValues:
    container_name: str
    location: str
    environment_id: str
    image: str
    cpu: str
    memory: str
    storage_link: str
    registry_host: str
    registry_username: str
    registry_password: str


PLACEHOLDERS: dict[str, str] = {
    "__CONTAINER_NAME__": "container_name",
    "__LOCATION__": "location",
    "__ENVIRONMENT_ID__": "environment_id",
    "__CONTAINER_IMAGE__": "image",
    "__CONTAINER_CPU__": "cpu",
    "__CONTAINER_MEMORY__": "memory",
    "__STORAGE_LINK__": "storage_link",
    "__CONTAINER_REPO__": "registry_host",
    "__REPO_USERNAME__": "registry_username",
    "__REPO_PASSWORD__": "registry_password",
}

# Tokens that fill a whole scalar and must stay numeric in the manifest.
NUMERIC_PLACEHOLDERS = frozenset({"__CONTAINER_CPU__"})

_PLACEHOLDER_RE = re.compile("|".join(re.escape(token) for token in PLACEHOLDERS))
_LEFTOVER_RE = re.compile(r"__[A-Z][A-Z0-9_]*?__")


def _leftovers(node: Any) -> set[str]:
    if isinstance(node, dict):
        found: set[str] = set()
        for k, v in node.items():
            found |= _leftovers(k) | _leftovers(v)
        return found
    if isinstance(node, list):
        found = set()
        for item in node:
            found |= _leftovers(item)
        return found
    if isinstance(node, str):
        return set(_LEFTOVER_RE.findall(_PLACEHOLDER_RE.sub("", node)))
    return set()


def _substitute(node: Any, values: ManifestValues) -> Any:
    if isinstance(node, dict):
        return {_substitute(k, values): _substitute(v, values) for k, v in node.items()}
    if isinstance(node, list):
        return [_substitute(item, values) for item in node]
    if not isinstance(node, str):
        return node

    if node in NUMERIC_PLACEHOLDERS:
        raw = str(getattr(values, PLACEHOLDERS[node]))
        try:
            return float(raw)
        except ValueError:
            raise ManifestRenderError(
                resource=f"manifest for {values.container_name}",
                message=f"{node} must be numeric, got {raw!r}",
            ) from None
    return _PLACEHOLDER_RE.sub(lambda m: str(getattr(values, PLACEHOLDERS[m.group(0)])), node)


def render_manifest(template_text: str, values: ManifestValues) -> str:
    """Render the manifest for one instance.

    The template is parsed as YAML first and tokens are replaced inside the
    parsed strings, so values never pass through YAML quoting or escaping:
    `\\`, `"`, `'`, `&`, `: ` or `#` in a password reach the manifest unchanged.
    Substitution is a single pass, so a value that happens to contain another
    token is not expanded again.
    """
    resource = f"manifest for {values.container_name}"
    try:
        tree = yaml.safe_load(template_text)
    except yaml.YAMLError as e:
        raise ManifestRenderError(resource=resource, message=f"template is not valid YAML: {e}") from e
    if not isinstance(tree, dict):
        raise ManifestRenderError(resource=resource, message="template is not a mapping")

    leftovers = sorted(_leftovers(tree))
    if leftovers:
        raise ManifestRenderError(resource=resource, message="unsubstituted placeholder(s): " + ", ".join(leftovers))

    rendered = _substitute(tree, values)
    return yaml.safe_dump(rendered, sort_keys=False, default_flow_style=False, allow_unicode=True)


def check_manifest_yaml(text: str, *, container_name: str) -> dict:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestRenderError(resource=f"manifest for {container_name}", message=f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ManifestRenderError(resource=f"manifest for {container_name}", message="manifest is not a mapping")
    return data


def write_manifest(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    print(f"📝 [manifest] wrote: {path}")
    return path
