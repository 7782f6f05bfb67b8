"""Data models for the k3s node installer and post-config wizard."""

import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# A manifest is a plain key/value tree, ready for yaml.safe_dump or the API.
ManifestDocument = Dict[str, Any]


class NodeRole(str, Enum):
    """Roles a machine can take when joining a k3s cluster."""
    FIRST_CONTROL_PLANE = 'first-control-plane'
    JOINING_CONTROL_PLANE = 'joining-control-plane'
    WORKER = 'worker'

    @property
    def is_server(self) -> bool:
        return self is not NodeRole.WORKER


class ExposureMode(str, Enum):
    """How the ingress controller service is exposed."""
    NODE_PORT = 'NodePort'
    LOAD_BALANCER = 'LoadBalancer'


class StorageClassState(str, Enum):
    """Default flag of a storage class."""
    DEFAULT = 'Default'
    NON_DEFAULT = 'NonDefault'


@dataclass(frozen=True)
class RoleRequest:
    """Validated operator answers for one node installation."""
    role: NodeRole
    node_ip: str
    node_name: Optional[str] = None
    overlay_interface: Optional[str] = None
    token: Optional[str] = None
    peer_address: Optional[str] = None
    labels: Tuple[str, ...] = ()
    taints: Tuple[str, ...] = ()
    disable_builtin_lb: bool = False
    enable_distributed_datastore: bool = False
    extra_args: Tuple[str, ...] = ()
    # Worker-only convenience: mark this node as an ingress entry point
    ingress_designation: bool = False
    dedicate_ingress: bool = False
    use_cn_mirror: bool = False


@dataclass(frozen=True)
class InstallPlan:
    """Installer arguments plus the environment the install script expects."""
    role: NodeRole
    args: Tuple[str, ...]
    env: Dict[str, str] = field(default_factory=dict)
    token_generated: bool = False
    token_insecure: bool = False

    @property
    def install_exec(self) -> str:
        """Shell-quoted argument list, for the summary and logs."""
        return shlex.join(self.args)

    def installer_argv(self) -> List[str]:
        """Command line for the install script piped on stdin.

        The arguments are passed positionally so each one reaches k3s as a
        single word, spaces and quotes included.
        """
        return ['sh', '-s', '-', *self.args]

    @property
    def join_url(self) -> Optional[str]:
        return self.env.get('K3S_URL')

    @property
    def token(self) -> str:
        return self.env['K3S_TOKEN']

    def labels(self) -> List[str]:
        """Values passed with --node-label, in order."""
        return _flag_values(self.args, '--node-label')

    def taints(self) -> List[str]:
        """Values passed with --node-taint, in order."""
        return _flag_values(self.args, '--node-taint')


def _flag_values(args: Tuple[str, ...], flag: str) -> List[str]:
    return [args[i + 1] for i, arg in enumerate(args[:-1]) if arg == flag]


@dataclass(frozen=True)
class IngressPlacementConfig:
    """Where the ingress controller runs and how it is exposed."""
    label_key: str = 'ingress'
    label_value: str = 'true'
    exposure_mode: ExposureMode = ExposureMode.NODE_PORT
    http_port: Optional[int] = 30080
    https_port: Optional[int] = 30443
    tolerate_dedicated_taint: bool = True


@dataclass(frozen=True)
class StorageConfig:
    """NFS dynamic provisioner settings."""
    server_address: str
    export_path: str = '/data/k3s'
    class_name: str = 'nfs-rwx'
    set_as_default: bool = False
    namespace: str = 'nfs-system'
    provisioner_image: str = 'registry.k8s.io/sig-storage/nfs-subdir-external-provisioner:v4.0.2'
    archive_on_delete: bool = True

    @property
    def provisioner_name(self) -> str:
        return f'{self.namespace}/nfs-provisioner'


@dataclass
class ApplyResult:
    """Outcome of sending manifests to the cluster."""
    applied: bool
    ready: Optional[bool] = None
    objects: List[str] = field(default_factory=list)
