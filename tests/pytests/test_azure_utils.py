import subprocess
from unittest.mock import patch

import pytest

from scripts.azure_utils import MASK, az_succeeds, az_tsv, get_az_account_info, run_az_command


@pytest.fixture(autouse=True)
def _az_installed():
    with patch("scripts.azure_utils.shutil.which", return_value="/usr/bin/az"):
        yield


def test_run_az_command_success():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 0
        mock_run.return_value.stdout = '{"key": "value"}'

        res = run_az_command(["group", "list"], verbose=False)
        assert res == {"key": "value"}
        mock_run.assert_called_once()
        args = mock_run.call_args[0][0]
        assert args == ["az", "group", "list"]


def test_run_az_command_non_json_output_returned_as_text():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 0
        mock_run.return_value.stdout = "abc-123\n"

        assert run_az_command(["group", "show"], verbose=False) == "abc-123"


def test_run_az_command_failure():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 1
        mock_run.return_value.stdout = ""
        mock_run.return_value.stderr = "error"

        with pytest.raises(subprocess.CalledProcessError):
            run_az_command(["group", "list"], verbose=False)


def test_run_az_command_ignore_errors_returns_none():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 3
        mock_run.return_value.stdout = ""
        mock_run.return_value.stderr = "not found"

        assert run_az_command(["containerapp", "list"], ignore_errors=True, verbose=False) is None


def test_run_az_command_masks_secrets(capsys):
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 1
        mock_run.return_value.stdout = ""
        mock_run.return_value.stderr = "denied"

        with pytest.raises(subprocess.CalledProcessError) as exc:
            run_az_command(["storage", "x", "--account-key", "s3cret"], secrets=["s3cret"])

    out = capsys.readouterr().out
    assert "s3cret" not in out
    assert MASK in out
    assert "s3cret" not in exc.value.cmd
    # The real value still reaches the CLI.
    assert "s3cret" in mock_run.call_args[0][0]


def test_run_az_command_missing_cli():
    with patch("scripts.azure_utils.shutil.which", return_value=None):
        with pytest.raises(RuntimeError):
            run_az_command(["group", "list"], verbose=False)


def test_az_succeeds_maps_exit_code():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 0
        mock_run.return_value.stdout = ""
        assert az_succeeds(["group", "show", "--name", "rg"]) is True

        mock_run.return_value.returncode = 3
        mock_run.return_value.stderr = "ResourceGroupNotFound"
        assert az_succeeds(["group", "show", "--name", "rg"]) is False


def test_az_tsv_appends_output_flag():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 0
        mock_run.return_value.stdout = "/subscriptions/x/env\n"

        assert az_tsv(["containerapp", "env", "show", "--query", "id"], verbose=False) == "/subscriptions/x/env"
        assert mock_run.call_args[0][0][-2:] == ["-o", "tsv"]


def test_get_az_account_info_handles_failure():
    with patch("scripts.azure_utils.run_az_command") as mock_az:
        mock_az.side_effect = subprocess.CalledProcessError(1, ["az"])
        assert get_az_account_info() == {"id": "", "tenantId": ""}

        mock_az.side_effect = None
        mock_az.return_value = {"id": "sub-1", "tenantId": "tid"}
        assert get_az_account_info() == {"id": "sub-1", "tenantId": "tid"}
