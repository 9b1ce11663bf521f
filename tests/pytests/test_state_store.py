from __future__ import annotations

from pathlib import Path

import pytest

from scripts.deploy.env_schema import STATE_KEYS, parse_dotenv_file
from scripts.deploy.errors import StateMissingError
from scripts.deploy.fleet_config import ResolvedState
from scripts.deploy.state_store import (
    STATE_HEADER,
    load_state,
    read_previous_state,
    render_state,
    resolve_teardown_state_path,
    save_state,
    state_path_for,
)


def test_save_state_writes_every_state_key(tmp_path: Path, fleet_config) -> None:
    path = save_state(state_path_for(tmp_path / "generated"), ResolvedState.from_config(fleet_config))

    text = path.read_text(encoding="utf-8")
    assert text.startswith(STATE_HEADER + "\n")
    kv = parse_dotenv_file(path)
    assert list(kv) == list(STATE_KEYS)
    assert kv["STORAGE_ACCOUNT"] == "fleetstorage01"
    assert kv["CONTAINER_IMAGE"] == "docker.io/acme/web:1.0"


def test_save_state_never_writes_unlisted_keys(tmp_path: Path) -> None:
    state = ResolvedState(values={"APP_NAME": "demo", "STORAGE_KEY": "secret-key", "WORKSPACE_KEY": "k2"})
    path = save_state(tmp_path / ".env", state)

    text = path.read_text(encoding="utf-8")
    assert "secret-key" not in text
    assert "STORAGE_KEY" not in text
    assert 'APP_NAME="demo"' in text


def test_save_state_leaves_no_temp_files(tmp_path: Path, fleet_config) -> None:
    state_dir = tmp_path / "state"
    save_state(state_dir / ".env", ResolvedState.from_config(fleet_config))
    save_state(state_dir / ".env", ResolvedState.from_config(fleet_config))
    assert sorted(p.name for p in state_dir.iterdir()) == [".env"]


def test_quoting_survives_dotenv_parsing(tmp_path: Path) -> None:
    tricky = 'p@ss "word" \\ with & #hash'
    path = tmp_path / ".env"
    path.write_text(render_state({"APP_NAME": "demo", "REPO_PASSWORD": tricky}), encoding="utf-8")

    kv = parse_dotenv_file(path)
    assert kv["REPO_PASSWORD"] == tricky
    assert kv["STORAGE_ACCOUNT"] == ""


def test_load_state_missing_file(tmp_path: Path) -> None:
    with pytest.raises(StateMissingError):
        load_state(tmp_path / "nope.env")


def test_read_previous_state_absent_is_empty(tmp_path: Path) -> None:
    assert read_previous_state(tmp_path / "generated") == {}


def test_teardown_prefers_generated_state(tmp_path: Path) -> None:
    (tmp_path / "generated").mkdir()
    (tmp_path / "generated" / ".env").write_text("RESOURCE_GROUP=a\n")
    (tmp_path / ".env").write_text("RESOURCE_GROUP=b\n")

    assert resolve_teardown_state_path(None, cwd=tmp_path) == tmp_path / "generated" / ".env"


def test_teardown_falls_back_to_cwd_env(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("RESOURCE_GROUP=b\n")
    assert resolve_teardown_state_path(None, cwd=tmp_path) == tmp_path / ".env"


def test_teardown_explicit_env_file(tmp_path: Path) -> None:
    (tmp_path / "custom.env").write_text("RESOURCE_GROUP=c\n")
    assert resolve_teardown_state_path("custom.env", cwd=tmp_path) == tmp_path / "custom.env"

    with pytest.raises(StateMissingError):
        resolve_teardown_state_path("missing.env", cwd=tmp_path)


def test_teardown_no_state_anywhere(tmp_path: Path) -> None:
    with pytest.raises(StateMissingError) as exc:
        resolve_teardown_state_path(None, cwd=tmp_path)
    assert "generated" in str(exc.value)
    assert len(exc.value.searched) == 2
