from unittest.mock import MagicMock, patch

import pytest

from k3sctl.modules.k3s.errors import (
    ClusterUnreachable, CompileError, InstallFailed, InvalidRoleState, K3sSetupError, OutOfRangeConfig,
)
from k3sctl.modules.k3s.manifests import DEFAULT_CLASS_ANNOTATION
from k3sctl.modules.k3s.models import (
    ApplyResult, IngressPlacementConfig, NodeRole, RoleRequest, StorageClassState, StorageConfig,
)
from k3sctl.modules.k3s.orchestrator import (
    PostConfigWizard, install_node, post_install_hints, render_summary, require_root,
)
from k3sctl.modules.k3s.storage_class import read_states


def worker_request(**kwargs):
    values = dict(role=NodeRole.WORKER, node_ip="10.0.0.5", node_name="edge-1",
                  token="s3cret", peer_address="10.0.0.1")
    values.update(kwargs)
    return RoleRequest(**values)


def first_request(**kwargs):
    values = dict(role=NodeRole.FIRST_CONTROL_PLANE, node_ip="10.0.0.1", node_name="cp-1")
    values.update(kwargs)
    return RoleRequest(**values)


def test_install_node_runs_confirmed_plan():
    runner = MagicMock()
    confirm = MagicMock(return_value=True)

    plan = install_node(worker_request(), confirm=confirm, runner=runner)

    runner.assert_called_once_with(plan, dry_run=False)
    summary = confirm.call_args[0][0]
    assert plan.install_exec in summary


def test_install_node_declined():
    runner = MagicMock()
    assert install_node(worker_request(), confirm=lambda summary: False, runner=runner) is None
    runner.assert_not_called()


def test_install_node_invalid_request_runs_nothing():
    runner = MagicMock()
    confirm = MagicMock(return_value=True)

    with pytest.raises(InvalidRoleState):
        install_node(worker_request(peer_address=""), confirm=confirm, runner=runner)

    confirm.assert_not_called()
    runner.assert_not_called()


def test_install_node_propagates_install_failure():
    runner = MagicMock(side_effect=InstallFailed(1))
    with pytest.raises(InstallFailed):
        install_node(worker_request(), confirm=lambda summary: True, runner=runner)


def test_install_node_dry_run():
    runner = MagicMock()
    plan = install_node(worker_request(), confirm=lambda summary: True, dry_run=True, runner=runner)
    runner.assert_called_once_with(plan, dry_run=True)


def test_summary_for_worker():
    request = worker_request(use_cn_mirror=True)
    plan = install_node(request, confirm=lambda summary: True, runner=MagicMock())
    summary = render_summary(plan, request)

    assert "agent (worker)" in summary
    assert "K3S_URL          : https://10.0.0.1:6443" in summary
    assert "Interface        : <unset>" in summary
    assert "Mirror           : cn" in summary
    assert "s3cret" not in summary


def test_summary_for_first_server_shows_token():
    request = first_request(token="abc123", overlay_interface="easytier0")
    plan = install_node(request, confirm=lambda summary: True, runner=MagicMock())
    summary = render_summary(plan, request)

    assert "Token            : abc123" in summary
    assert "Interface        : easytier0" in summary
    assert "K3S_URL" not in summary
    assert "Mirror           : official default" in summary
    assert "INSECURE" not in summary


def test_post_install_hints():
    plan = install_node(first_request(token="abc123"), confirm=lambda s: True, runner=MagicMock())
    assert "abc123" in post_install_hints(plan)

    plan = install_node(worker_request(), confirm=lambda s: True, runner=MagicMock())
    assert "s3cret" not in post_install_hints(plan)


@patch("k3sctl.modules.k3s.orchestrator.os.geteuid", return_value=1000, create=True)
def test_require_root(mock_euid):
    with pytest.raises(K3sSetupError) as exc:
        require_root()
    assert "root" in str(exc.value)


def make_wizard(storage_api=None):
    applier = MagicMock()
    applier.apply_and_wait.return_value = ApplyResult(applied=True, ready=True, objects=["x"])
    applier.apply.return_value = ["x"]
    applier.observe_rollout.return_value = True
    if storage_api is not None:
        applier.storage_api = storage_api
    return PostConfigWizard(applier), applier


def test_wizard_skips_everything():
    wizard, applier = make_wizard()
    assert wizard.run() == {}
    applier.connect.assert_not_called()


def test_wizard_unreachable_cluster_applies_nothing():
    wizard, applier = make_wizard()
    applier.connect.side_effect = ClusterUnreachable("no kubeconfig")

    with pytest.raises(ClusterUnreachable):
        wizard.run(ingress=IngressPlacementConfig())
    applier.apply_and_wait.assert_not_called()
    applier.apply.assert_not_called()


def test_wizard_bad_port_contacts_nothing():
    wizard, applier = make_wizard()
    with pytest.raises(OutOfRangeConfig):
        wizard.run(
            ingress=IngressPlacementConfig(http_port=80),
            storage=StorageConfig(server_address="192.168.1.20"),
        )
    applier.connect.assert_not_called()
    applier.apply_and_wait.assert_not_called()
    applier.apply.assert_not_called()


def test_wizard_configures_ingress():
    wizard, applier = make_wizard()
    results = wizard.run(ingress=IngressPlacementConfig())

    assert results["ingress"].ready is True
    documents, namespace, deployment = applier.apply_and_wait.call_args[0]
    assert documents[0]["kind"] == "HelmChartConfig"
    assert (namespace, deployment) == ("kube-system", "traefik")
    applier.connect.assert_called_once()


def test_wizard_deploys_default_storage(storage_api_factory):
    storage_api = storage_api_factory({
        "local-path": {"annotations": {DEFAULT_CLASS_ANNOTATION: "true"}},
    })
    wizard, applier = make_wizard(storage_api)

    def apply(documents):
        storage_class = documents[-1]
        storage_api.add(storage_class["metadata"]["name"], storage_class["provisioner"],
                        storage_class["metadata"]["annotations"])
        return ["StorageClass/nfs-rwx"]

    applier.apply.side_effect = apply
    config = StorageConfig(server_address="192.168.1.20", set_as_default=True)

    results = wizard.run(storage=config)

    assert results["storage"].objects == ["StorageClass/nfs-rwx"]
    assert read_states(storage_api) == {
        "local-path": StorageClassState.NON_DEFAULT,
        "nfs-rwx": StorageClassState.DEFAULT,
    }
    assert [name for name, _ in storage_api.patches] == ["local-path", "nfs-rwx"]


def test_wizard_promotes_default_before_rollout_wait(storage_api_factory):
    storage_api = storage_api_factory({
        "local-path": {"annotations": {DEFAULT_CLASS_ANNOTATION: "true"}},
        "nfs-rwx": {"provisioner": "nfs-system/nfs-provisioner",
                    "annotations": {DEFAULT_CLASS_ANNOTATION: "false"}},
    })
    wizard, applier = make_wizard(storage_api)
    seen = {}

    def observe_rollout(namespace, deployment):
        seen["states"] = read_states(storage_api)
        return False

    applier.observe_rollout.side_effect = observe_rollout

    result = wizard.deploy_storage(StorageConfig(server_address="192.168.1.20", set_as_default=True))

    assert seen["states"]["nfs-rwx"] is StorageClassState.DEFAULT
    assert result.ready is False
    applier.observe_rollout.assert_called_once_with("nfs-system", "nfs-provisioner")


def test_wizard_storage_without_default(storage_api_factory):
    storage_api = storage_api_factory({
        "local-path": {"annotations": {DEFAULT_CLASS_ANNOTATION: "true"}},
    })
    wizard, applier = make_wizard(storage_api)
    result = wizard.deploy_storage(StorageConfig(server_address="192.168.1.20"))

    assert storage_api.patches == []
    assert result.ready is True
    assert [doc["kind"] for doc in applier.apply.call_args[0][0]][-1] == "StorageClass"
    applier.observe_rollout.assert_called_once_with("nfs-system", "nfs-provisioner")


def test_wizard_refuses_foreign_storage_class(storage_api_factory):
    storage_api = storage_api_factory({"nfs-rwx": {"provisioner": "example.com/other"}})
    wizard, applier = make_wizard(storage_api)

    with pytest.raises(CompileError) as exc:
        wizard.deploy_storage(StorageConfig(server_address="192.168.1.20"))
    assert exc.value.field == "class_name"
    applier.apply.assert_not_called()
