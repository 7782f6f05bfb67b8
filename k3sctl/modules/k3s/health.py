"""Quick cluster check: nodes, storage classes and system pods."""
import logging
from typing import Any, Dict, List

from kubernetes.client.rest import ApiException

from .storage_class import is_default_class

logger = logging.getLogger("k3s.health")


def _node_ready(node) -> bool:
    for condition in (node.status.conditions or []):
        if condition.type == 'Ready':
            return condition.status == 'True'
    return False


def _node_roles(node) -> str:
    prefix = 'node-role.kubernetes.io/'
    roles = sorted(k[len(prefix):] for k in (node.metadata.labels or {}) if k.startswith(prefix))
    return ','.join(roles) or '<none>'


def _internal_ip(node) -> str:
    for address in (node.status.addresses or []):
        if address.type == 'InternalIP':
            return address.address
    return '<none>'


def list_nodes(core_api) -> List[Dict[str, Any]]:
    return [
        {
            'name': node.metadata.name,
            'ready': _node_ready(node),
            'roles': _node_roles(node),
            'internal_ip': _internal_ip(node),
            'labels': dict(node.metadata.labels or {}),
        }
        for node in core_api.list_node().items
    ]


def list_storage_classes(storage_api) -> List[Dict[str, Any]]:
    return [
        {
            'name': sc.metadata.name,
            'provisioner': sc.provisioner,
            'default': is_default_class(sc.metadata.annotations),
        }
        for sc in storage_api.list_storage_class().items
    ]


def list_system_pods(core_api, namespace: str = 'kube-system') -> List[Dict[str, Any]]:
    return [
        {
            'name': pod.metadata.name,
            'phase': pod.status.phase,
            'node': pod.spec.node_name,
        }
        for pod in core_api.list_namespaced_pod(namespace).items
    ]


def check_cluster_health(core_api, storage_api) -> Dict[str, Any]:
    """Check the health of the cluster.

    Args:
        core_api: ``kubernetes.client.CoreV1Api`` instance
        storage_api: ``kubernetes.client.StorageV1Api`` instance

    Returns:
        Dict containing health status and details
    """
    health = {
        'healthy': False,
        'nodes': [],
        'storage_classes': [],
        'pods': [],
        'issues': []
    }

    try:
        health['nodes'] = list_nodes(core_api)
        not_ready = [n['name'] for n in health['nodes'] if not n['ready']]
        if not_ready:
            health['issues'].append(f"Nodes not Ready: {', '.join(not_ready)}")

        health['storage_classes'] = list_storage_classes(storage_api)
        defaults = [sc['name'] for sc in health['storage_classes'] if sc['default']]
        if len(defaults) > 1:
            health['issues'].append(f"More than one default StorageClass: {', '.join(defaults)}")

        health['pods'] = list_system_pods(core_api)
        failing = [
            p['name'] for p in health['pods'] if p['phase'] not in ('Running', 'Succeeded')
        ]
        if failing:
            health['issues'].append(f"kube-system pods not running: {', '.join(failing)}")

        if not health['issues']:
            health['healthy'] = True

    except ApiException as e:
        logger.error(f"Health check failed: {e.reason}")
        health['issues'].append(f"Health check failed: {e.reason}")

    return health


def format_health(health: Dict[str, Any]) -> str:
    """Render a health report as plain text tables."""
    lines = ["==== Nodes ===="]
    for n in health['nodes']:
        status = 'Ready' if n['ready'] else 'NotReady'
        lines.append(f"{n['name']:<30} {status:<9} {n['roles']:<28} {n['internal_ip']}")

    lines += ["", "==== StorageClasses ===="]
    for sc in health['storage_classes']:
        marker = ' (default)' if sc['default'] else ''
        lines.append(f"{sc['name'] + marker:<40} {sc['provisioner']}")

    lines += ["", "==== kube-system pods ===="]
    for p in health['pods']:
        lines.append(f"{p['name']:<55} {p['phase'] or '':<10} {p['node'] or ''}")

    if health['issues']:
        lines += ["", "==== Issues ===="] + [f"- {issue}" for issue in health['issues']]
    return '\n'.join(lines)
