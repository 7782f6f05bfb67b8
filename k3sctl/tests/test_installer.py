import logging
import os
import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from k3sctl.modules.k3s.compiler import compile_role
from k3sctl.modules.k3s.errors import InstallFailed
from k3sctl.modules.k3s.installer import fetch_install_script, run_install
from k3sctl.modules.k3s.models import NodeRole, RoleRequest

SCRIPT = "#!/bin/sh\necho installing\n"


@pytest.fixture
def plan():
    return compile_role(RoleRequest(
        role=NodeRole.WORKER, node_ip="10.0.0.5", node_name="edge-1",
        token="s3cret", peer_address="10.0.0.1",
    ))


def script_response(text=SCRIPT):
    response = MagicMock()
    response.text = text
    return response


@patch("k3sctl.modules.k3s.installer.subprocess.run")
@patch("k3sctl.modules.k3s.installer.requests.get")
def test_run_install_passes_plan_environment(mock_get, mock_run, plan, monkeypatch):
    monkeypatch.delenv("K3S_TOKEN", raising=False)
    mock_get.return_value = script_response()
    mock_run.return_value = MagicMock(returncode=0)

    run_install(plan, script_url="https://get.k3s.io")

    args, kwargs = mock_run.call_args
    assert args[0] == ["sh", "-s", "-", *plan.args]
    assert kwargs["input"] == SCRIPT
    env = kwargs["env"]
    assert env["K3S_URL"] == "https://10.0.0.1:6443"
    assert env["K3S_TOKEN"] == "s3cret"
    assert "INSTALL_K3S_EXEC" not in env
    # the parent environment is left untouched
    assert "K3S_TOKEN" not in os.environ


@patch("k3sctl.modules.k3s.installer.subprocess.run")
@patch("k3sctl.modules.k3s.installer.requests.get")
def test_run_install_passes_quoted_extra_args_as_one_word(mock_get, mock_run):
    mock_get.return_value = script_response()
    mock_run.return_value = MagicMock(returncode=0)
    plan = compile_role(RoleRequest(
        role=NodeRole.WORKER, node_ip="10.0.0.5", node_name="edge-1",
        token="s3cret", peer_address="10.0.0.1",
        extra_args=("--kubelet-arg", "system-reserved=cpu=500m, memory=1Gi"),
    ))

    run_install(plan)

    argv = mock_run.call_args[0][0]
    assert argv[:4] == ["sh", "-s", "-", "agent"]
    assert argv[-2:] == ["--kubelet-arg", "system-reserved=cpu=500m, memory=1Gi"]


@patch("k3sctl.modules.k3s.installer.subprocess.run")
@patch("k3sctl.modules.k3s.installer.requests.get")
def test_run_install_non_zero_exit(mock_get, mock_run, plan):
    mock_get.return_value = script_response()
    mock_run.return_value = MagicMock(returncode=3)

    with pytest.raises(InstallFailed) as exc:
        run_install(plan)
    assert exc.value.returncode == 3


@patch("k3sctl.modules.k3s.installer.subprocess.run")
@patch("k3sctl.modules.k3s.installer.requests.get")
def test_run_install_timeout(mock_get, mock_run, plan):
    mock_get.return_value = script_response()
    mock_run.side_effect = subprocess.TimeoutExpired(cmd="sh", timeout=1)

    with pytest.raises(InstallFailed) as exc:
        run_install(plan, timeout=1)
    assert exc.value.returncode == -1


@patch("k3sctl.modules.k3s.installer.subprocess.run")
@patch("k3sctl.modules.k3s.installer.requests.get")
def test_run_install_download_failure(mock_get, mock_run, plan):
    mock_get.side_effect = requests.ConnectionError("no route to host")

    with pytest.raises(InstallFailed):
        run_install(plan)
    mock_run.assert_not_called()


@patch("k3sctl.modules.k3s.installer.requests.get")
def test_fetch_empty_script(mock_get):
    mock_get.return_value = script_response("  \n")
    with pytest.raises(InstallFailed):
        fetch_install_script("https://get.k3s.io")


@patch("k3sctl.modules.k3s.installer.subprocess.run")
@patch("k3sctl.modules.k3s.installer.requests.get")
def test_run_install_dry_run(mock_get, mock_run, plan, caplog):
    with caplog.at_level(logging.DEBUG, logger="k3s.installer"):
        run_install(plan, dry_run=True)

    mock_get.assert_not_called()
    mock_run.assert_not_called()
    assert plan.install_exec in caplog.text
    assert "s3cret" not in caplog.text
    assert "[REDACTED]" in caplog.text
