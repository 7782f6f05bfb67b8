import logging
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from k3sctl.modules.k3s.applier import MERGE_PATCH, ClusterApplier
from k3sctl.modules.k3s.errors import ClusterUnreachable, RolloutNotObserved

NAMESPACE = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "nfs-system"}}
ACCOUNT = {"apiVersion": "v1", "kind": "ServiceAccount",
           "metadata": {"name": "nfs-provisioner", "namespace": "nfs-system"}}


def make_applier(namespaced=True, **kwargs):
    applier = ClusterApplier(api_client=MagicMock(), **kwargs)
    applier._dynamic = MagicMock()
    resource = applier._dynamic.resources.get.return_value
    resource.namespaced = namespaced
    return applier, resource


def deployment(replicas=1, updated=1, available=1, generation=2, observed=2):
    return SimpleNamespace(
        metadata=SimpleNamespace(generation=generation),
        spec=SimpleNamespace(replicas=replicas),
        status=SimpleNamespace(
            observed_generation=observed, updated_replicas=updated, available_replicas=available,
        ),
    )


def test_apply_creates_objects():
    applier, resource = make_applier()
    applied = applier.apply([ACCOUNT])

    assert applied == ["ServiceAccount/nfs-system/nfs-provisioner"]
    resource.create.assert_called_once_with(body=ACCOUNT, namespace="nfs-system")
    resource.patch.assert_not_called()


def test_apply_patches_existing_objects():
    applier, resource = make_applier()
    resource.create.side_effect = ApiException(status=409, reason="Conflict")

    applier.apply([ACCOUNT])

    resource.patch.assert_called_once_with(
        body=ACCOUNT, name="nfs-provisioner", namespace="nfs-system", content_type=MERGE_PATCH,
    )


def test_apply_cluster_scoped_object():
    applier, resource = make_applier(namespaced=False)
    assert applier.apply([NAMESPACE]) == ["Namespace/nfs-system"]
    resource.create.assert_called_once_with(body=NAMESPACE, namespace=None)


def test_apply_skips_empty_documents():
    applier, resource = make_applier()
    assert applier.apply([{}, None]) == []
    resource.create.assert_not_called()


def test_apply_propagates_other_errors():
    applier, resource = make_applier()
    resource.create.side_effect = ApiException(status=403, reason="Forbidden")
    with pytest.raises(ApiException):
        applier.apply([ACCOUNT])


def test_apply_connection_lost_is_unreachable():
    applier, resource = make_applier()
    resource.create.side_effect = [None, MaxRetryError(pool=None, url="/api/v1/namespaces")]

    with pytest.raises(ClusterUnreachable) as exc:
        applier.apply([ACCOUNT, NAMESPACE])
    assert "Namespace/nfs-system" in str(exc.value)
    assert "1 of 2 applied" in str(exc.value)


def test_apply_discovery_failure_is_unreachable():
    applier, _ = make_applier()
    applier._dynamic.resources.get.side_effect = ConnectionResetError("reset by peer")
    with pytest.raises(ClusterUnreachable):
        applier.apply([ACCOUNT])


@patch("k3sctl.modules.k3s.applier.client.AppsV1Api")
def test_deployment_ready(mock_apps):
    applier, _ = make_applier()
    read = mock_apps.return_value.read_namespaced_deployment

    read.return_value = deployment()
    assert applier._deployment_ready("nfs-system", "nfs-provisioner")

    read.return_value = deployment(available=0)
    assert not applier._deployment_ready("nfs-system", "nfs-provisioner")

    read.return_value = deployment(observed=1)
    assert not applier._deployment_ready("nfs-system", "nfs-provisioner")

    read.side_effect = ApiException(status=404, reason="Not Found")
    assert not applier._deployment_ready("nfs-system", "nfs-provisioner")


@patch("k3sctl.modules.k3s.applier.client.AppsV1Api")
def test_deployment_ready_connection_error_is_not_ready(mock_apps):
    applier, _ = make_applier()
    read = mock_apps.return_value.read_namespaced_deployment
    read.side_effect = MaxRetryError(pool=None, url="/apis/apps/v1")
    assert not applier._deployment_ready("nfs-system", "nfs-provisioner")

    read.side_effect = ApiException(status=500, reason="Internal Server Error")
    with pytest.raises(ApiException):
        applier._deployment_ready("nfs-system", "nfs-provisioner")


@patch("k3sctl.modules.k3s.applier.client.AppsV1Api")
def test_apply_and_wait_survives_lost_connection(mock_apps, caplog):
    applier, _ = make_applier(rollout_timeout=0, poll_interval=0)
    mock_apps.return_value.read_namespaced_deployment.side_effect = MaxRetryError(
        pool=None, url="/apis/apps/v1/namespaces/nfs-system/deployments/nfs-provisioner",
    )

    with caplog.at_level(logging.WARNING, logger="k3s.applier"):
        result = applier.apply_and_wait([ACCOUNT], "nfs-system", "nfs-provisioner")

    assert result.applied is True
    assert result.ready is False
    assert "not ready" in caplog.text


def test_wait_for_rollout_polls_until_ready():
    applier, _ = make_applier(rollout_timeout=60, poll_interval=0)
    with patch.object(ClusterApplier, "_deployment_ready", side_effect=[False, False, True]) as ready:
        applier.wait_for_rollout("kube-system", "traefik")
    assert ready.call_count == 3


def test_wait_for_rollout_times_out():
    applier, _ = make_applier(rollout_timeout=0, poll_interval=0)
    with patch.object(ClusterApplier, "_deployment_ready", return_value=False):
        with pytest.raises(RolloutNotObserved) as exc:
            applier.wait_for_rollout("kube-system", "traefik")
    assert exc.value.name == "traefik"


def test_apply_and_wait_turns_timeout_into_warning(caplog):
    applier, _ = make_applier(rollout_timeout=0, poll_interval=0)
    with patch.object(ClusterApplier, "_deployment_ready", return_value=False):
        with caplog.at_level(logging.WARNING, logger="k3s.applier"):
            result = applier.apply_and_wait([ACCOUNT], "nfs-system", "nfs-provisioner")

    assert result.applied is True
    assert result.ready is False
    assert result.objects == ["ServiceAccount/nfs-system/nfs-provisioner"]
    assert "not ready" in caplog.text


def test_apply_and_wait_ready():
    applier, _ = make_applier()
    with patch.object(ClusterApplier, "_deployment_ready", return_value=True):
        result = applier.apply_and_wait([ACCOUNT], "nfs-system", "nfs-provisioner")
    assert result.ready is True


@patch("k3sctl.modules.k3s.applier.client.VersionApi")
def test_connect_unreachable(mock_version):
    mock_version.return_value.get_code.side_effect = ApiException(status=503, reason="Unavailable")
    applier = ClusterApplier(api_client=MagicMock())
    with pytest.raises(ClusterUnreachable):
        applier.connect()


@patch("k3sctl.modules.k3s.applier.client.VersionApi")
def test_connect_connection_refused(mock_version):
    mock_version.return_value.get_code.side_effect = ConnectionRefusedError("refused")
    with pytest.raises(ClusterUnreachable):
        ClusterApplier(api_client=MagicMock()).connect()


@patch("k3sctl.modules.k3s.applier.client.VersionApi")
def test_connect_ok(mock_version):
    applier = ClusterApplier(api_client=MagicMock())
    assert applier.connect() is applier
    mock_version.return_value.get_code.assert_called_once()


def test_connect_without_kubeconfig(tmp_path, monkeypatch):
    monkeypatch.delenv("KUBECONFIG_CONTENT", raising=False)
    applier = ClusterApplier(kubeconfig=str(tmp_path / "missing.yaml"))
    with pytest.raises(ClusterUnreachable) as exc:
        applier.connect()
    assert "Kubeconfig not found" in str(exc.value)
