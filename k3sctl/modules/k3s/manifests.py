"""Manifest generation for the post-config wizard.

Two families of documents are produced, both as plain dictionaries:

- an ingress placement override for the bundled Traefik chart, delivered as a
  ``HelmChartConfig`` so the k3s helm controller re-renders the release
- the NFS dynamic provisioner stack (namespace, RBAC, deployment, StorageClass)

Rendering is pure: the same input always yields the same documents, and the
YAML produced by :func:`dump_documents` is byte-for-byte stable, so re-running
the wizard re-applies identical objects.
"""

import logging
import re
from typing import Any, Dict, List

import yaml

from .compiler import DEDICATED_TAINT_EFFECT, DEDICATED_TAINT_KEY, DEDICATED_TAINT_VALUE
from .errors import CompileError, OutOfRangeConfig
from .models import ExposureMode, IngressPlacementConfig, ManifestDocument, StorageConfig

logger = logging.getLogger("k3s.manifests")

NODE_PORT_MIN = 30000
NODE_PORT_MAX = 32767

INGRESS_CHART_NAME = 'traefik'
INGRESS_NAMESPACE = 'kube-system'

DEFAULT_CLASS_ANNOTATION = 'storageclass.kubernetes.io/is-default-class'
PROVISIONER_NAME = 'nfs-provisioner'

_DNS1123_SUBDOMAIN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')


def validate_node_port(field: str, port) -> int:
    """Ensure a port lies in the NodePort range.

    Raises:
        OutOfRangeConfig: If the port is missing, not an integer or out of range
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise OutOfRangeConfig(field, port, f"NodePort must be an integer, got {port!r}")
    if not NODE_PORT_MIN <= port <= NODE_PORT_MAX:
        raise OutOfRangeConfig(
            field, port, f"{port} is outside the NodePort range {NODE_PORT_MIN}-{NODE_PORT_MAX}"
        )
    return port


def validate_resource_name(field: str, name: str) -> str:
    """Ensure ``name`` is a valid Kubernetes object name (DNS-1123 subdomain)."""
    if not name or len(name) > 253 or not _DNS1123_SUBDOMAIN.match(name):
        raise OutOfRangeConfig(field, name, f"{name!r} is not a valid resource name")
    return name


def _ingress_values(config: IngressPlacementConfig) -> Dict[str, Any]:
    deployment: Dict[str, Any] = {
        'nodeSelector': {config.label_key: config.label_value},
    }
    if config.tolerate_dedicated_taint:
        deployment['tolerations'] = [{
            'key': DEDICATED_TAINT_KEY,
            'operator': 'Equal',
            'value': DEDICATED_TAINT_VALUE,
            'effect': DEDICATED_TAINT_EFFECT,
        }]

    values: Dict[str, Any] = {'deployment': deployment}
    if ExposureMode(config.exposure_mode) is ExposureMode.NODE_PORT:
        # Local keeps the client source IP
        values['service'] = {
            'type': 'NodePort',
            'spec': {'externalTrafficPolicy': 'Local'},
        }
        values['ports'] = {
            'web': {'nodePort': config.http_port},
            'websecure': {'nodePort': config.https_port},
        }
    return values


def render_ingress_placement(config: IngressPlacementConfig) -> ManifestDocument:
    """Render the ingress controller placement override.

    Args:
        config: Ingress placement choices

    Returns:
        A ``HelmChartConfig`` document for the bundled Traefik chart

    Raises:
        CompileError: If the label selector is empty
        OutOfRangeConfig: If NodePort values are outside the legal range
    """
    if not config.label_key or not config.label_key.strip():
        raise CompileError('label_key', "ingress node label key is required")
    if config.label_value is None:
        raise CompileError('label_value', "ingress node label value is required")

    mode = ExposureMode(config.exposure_mode)
    if mode is ExposureMode.NODE_PORT:
        validate_node_port('http_port', config.http_port)
        validate_node_port('https_port', config.https_port)
        if config.http_port == config.https_port:
            raise OutOfRangeConfig(
                'https_port', config.https_port, "HTTP and HTTPS NodePorts must differ"
            )

    values = _ingress_values(config)
    return {
        'apiVersion': 'helm.cattle.io/v1',
        'kind': 'HelmChartConfig',
        'metadata': {
            'name': INGRESS_CHART_NAME,
            'namespace': INGRESS_NAMESPACE,
        },
        'spec': {
            'valuesContent': yaml.safe_dump(values, default_flow_style=False, sort_keys=False),
        },
    }


def _storage_labels() -> Dict[str, str]:
    return {'app': PROVISIONER_NAME}


def render_storage_stack(config: StorageConfig) -> List[ManifestDocument]:
    """Render the NFS provisioner stack in dependency order.

    The StorageClass is always rendered as non-default; promotion to default
    is a separate step (see :mod:`.storage_class`).

    Raises:
        CompileError: If the server address or export path is missing
        OutOfRangeConfig: If the class name is not a valid resource name
    """
    if not config.server_address or not config.server_address.strip():
        raise CompileError('server_address', "NFS server address is required")
    if not config.export_path or not config.export_path.startswith('/'):
        raise CompileError('export_path', f"export path must be absolute, got {config.export_path!r}")
    validate_resource_name('class_name', config.class_name)
    validate_resource_name('namespace', config.namespace)

    namespace = config.namespace
    server = config.server_address.strip()
    path = config.export_path

    return [
        {
            'apiVersion': 'v1',
            'kind': 'Namespace',
            'metadata': {'name': namespace},
        },
        {
            'apiVersion': 'v1',
            'kind': 'ServiceAccount',
            'metadata': {'name': PROVISIONER_NAME, 'namespace': namespace},
        },
        {
            'apiVersion': 'rbac.authorization.k8s.io/v1',
            'kind': 'ClusterRole',
            'metadata': {'name': f'{PROVISIONER_NAME}-runner'},
            'rules': [
                {'apiGroups': [''], 'resources': ['persistentvolumes'],
                 'verbs': ['get', 'list', 'watch', 'create', 'delete']},
                {'apiGroups': [''], 'resources': ['persistentvolumeclaims'],
                 'verbs': ['get', 'list', 'watch', 'update']},
                {'apiGroups': [''], 'resources': ['events'],
                 'verbs': ['create', 'update', 'patch']},
                {'apiGroups': ['storage.k8s.io'], 'resources': ['storageclasses'],
                 'verbs': ['get', 'list', 'watch']},
                {'apiGroups': [''], 'resources': ['services', 'endpoints'],
                 'verbs': ['get', 'list', 'watch']},
            ],
        },
        {
            'apiVersion': 'rbac.authorization.k8s.io/v1',
            'kind': 'ClusterRoleBinding',
            'metadata': {'name': f'run-{PROVISIONER_NAME}'},
            'roleRef': {
                'apiGroup': 'rbac.authorization.k8s.io',
                'kind': 'ClusterRole',
                'name': f'{PROVISIONER_NAME}-runner',
            },
            'subjects': [{
                'kind': 'ServiceAccount',
                'name': PROVISIONER_NAME,
                'namespace': namespace,
            }],
        },
        {
            'apiVersion': 'apps/v1',
            'kind': 'Deployment',
            'metadata': {'name': PROVISIONER_NAME, 'namespace': namespace},
            'spec': {
                'replicas': 1,
                'strategy': {'type': 'Recreate'},
                'selector': {'matchLabels': _storage_labels()},
                'template': {
                    'metadata': {'labels': _storage_labels()},
                    'spec': {
                        'serviceAccountName': PROVISIONER_NAME,
                        'containers': [{
                            'name': PROVISIONER_NAME,
                            'image': config.provisioner_image,
                            'env': [
                                {'name': 'PROVISIONER_NAME', 'value': config.provisioner_name},
                                {'name': 'NFS_SERVER', 'value': server},
                                {'name': 'NFS_PATH', 'value': path},
                            ],
                            'volumeMounts': [{
                                'name': 'nfs-root',
                                'mountPath': '/persistentvolumes',
                            }],
                        }],
                        'volumes': [{
                            'name': 'nfs-root',
                            'nfs': {'server': server, 'path': path},
                        }],
                    },
                },
            },
        },
        {
            'apiVersion': 'storage.k8s.io/v1',
            'kind': 'StorageClass',
            'metadata': {
                'name': config.class_name,
                'annotations': {DEFAULT_CLASS_ANNOTATION: 'false'},
            },
            'provisioner': config.provisioner_name,
            'parameters': {'archiveOnDelete': 'true' if config.archive_on_delete else 'false'},
            'reclaimPolicy': 'Delete',
            'volumeBindingMode': 'Immediate',
            'allowVolumeExpansion': True,
        },
    ]


def dump_documents(documents: List[ManifestDocument]) -> str:
    """Serialize documents as a multi-document YAML stream."""
    return yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)
