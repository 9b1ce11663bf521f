"""Persisted fleet state (`generated/.env`).

The state file is a dotenv file with one `KEY="value"` line per state key. It is
written fresh after every successful deploy and read by destroy (and by the next
deploy, to recall a generated storage account name).
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Mapping

from scripts.deploy.env_schema import STATE_KEYS, parse_dotenv_file
from scripts.deploy.errors import StateMissingError
from scripts.deploy.fleet_config import ResolvedState


STATE_FILENAME = ".env"
STATE_HEADER = "# Generated/updated by scripts/deploy/fleet_deploy.py"


def state_path_for(generated_dir: Path) -> Path:
    return generated_dir / STATE_FILENAME


def _quote(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def render_state(values: Mapping[str, str]) -> str:
    lines = [STATE_HEADER]
    for key in STATE_KEYS:
        lines.append(f"{key}={_quote(values.get(key, ''))}")
    return "\n".join(lines) + "\n"


def save_state(path: Path, state: ResolvedState) -> Path:
    """Atomically replace the state file. Keys outside STATE_KEYS are never written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = render_state(state.values)

    fd, tmp_name = tempfile.mkstemp(prefix=".env.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    print(f"💾 [state] wrote: {path}")
    return path


def load_state(path: Path) -> dict[str, str]:
    if not path.is_file():
        raise StateMissingError(searched=[path], message=f"Env file not found: {path}")
    return parse_dotenv_file(path)


def read_previous_state(generated_dir: Path) -> dict[str, str]:
    """Return the last persisted state, or {} on a first run."""
    path = state_path_for(generated_dir)
    if not path.is_file():
        return {}
    return parse_dotenv_file(path)


def resolve_teardown_state_path(env_file: str | Path | None, *, cwd: Path) -> Path:
    """Pick the state file for destroy: --env-file, then ./generated/.env, then ./.env."""
    if env_file:
        explicit = Path(env_file).expanduser()
        if not explicit.is_absolute():
            explicit = cwd / explicit
        if not explicit.is_file():
            raise StateMissingError(searched=[explicit], message=f"Env file not found: {explicit}")
        return explicit

    candidates = [state_path_for(cwd / "generated"), cwd / STATE_FILENAME]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    raise StateMissingError(searched=candidates)
