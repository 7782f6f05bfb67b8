from types import SimpleNamespace
from unittest.mock import MagicMock

from kubernetes.client.rest import ApiException

from k3sctl.modules.k3s.health import check_cluster_health, format_health
from k3sctl.modules.k3s.manifests import DEFAULT_CLASS_ANNOTATION


def node(name, ready=True, ip="10.0.0.1", roles=("control-plane",)):
    return SimpleNamespace(
        metadata=SimpleNamespace(
            name=name, labels={f"node-role.kubernetes.io/{r}": "true" for r in roles},
        ),
        status=SimpleNamespace(
            conditions=[SimpleNamespace(type="Ready", status="True" if ready else "False")],
            addresses=[SimpleNamespace(type="InternalIP", address=ip)],
        ),
    )


def pod(name, phase="Running"):
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name),
        status=SimpleNamespace(phase=phase),
        spec=SimpleNamespace(node_name="cp-1"),
    )


def core_api(nodes, pods):
    api = MagicMock()
    api.list_node.return_value = SimpleNamespace(items=nodes)
    api.list_namespaced_pod.return_value = SimpleNamespace(items=pods)
    return api


def test_healthy_cluster(storage_api_factory):
    storage_api = storage_api_factory({"local-path": {"annotations": {DEFAULT_CLASS_ANNOTATION: "true"}}})
    health = check_cluster_health(core_api([node("cp-1")], [pod("coredns")]), storage_api)

    assert health["healthy"] is True
    assert health["issues"] == []
    assert health["nodes"][0]["roles"] == "control-plane"
    assert health["storage_classes"] == [
        {"name": "local-path", "provisioner": "rancher.io/local-path", "default": True}
    ]

    report = format_health(health)
    assert "local-path (default)" in report
    assert "10.0.0.1" in report


def test_issues_reported(storage_api_factory):
    storage_api = storage_api_factory({
        "local-path": {"annotations": {DEFAULT_CLASS_ANNOTATION: "true"}},
        "nfs-rwx": {"annotations": {DEFAULT_CLASS_ANNOTATION: "true"}},
    })
    api = core_api([node("cp-1"), node("edge-1", ready=False, roles=())], [pod("traefik", "Pending")])
    health = check_cluster_health(api, storage_api)

    assert health["healthy"] is False
    assert len(health["issues"]) == 3
    assert "edge-1" in health["issues"][0]
    assert "==== Issues ====" in format_health(health)


def test_api_error_is_reported(storage_api_factory):
    api = MagicMock()
    api.list_node.side_effect = ApiException(status=403, reason="Forbidden")
    health = check_cluster_health(api, storage_api_factory())

    assert health["healthy"] is False
    assert "Forbidden" in health["issues"][0]
