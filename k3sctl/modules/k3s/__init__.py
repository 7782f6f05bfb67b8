"""
k3s Node Installer Module

This package turns operator answers into k3s installer invocations and
post-install cluster configuration.

Key Features:
- Role compilation for first control-plane, joining control-plane and worker nodes
- Cluster join token generation
- Ingress controller placement (NodePort or LoadBalancer exposure)
- NFS dynamic storage provisioning with a single default StorageClass
- Best-effort rollout observation with bounded waits
"""

from .models import (
    NodeRole, ExposureMode, StorageClassState, RoleRequest, InstallPlan,
    IngressPlacementConfig, StorageConfig, ApplyResult,
)
from .errors import (
    K3sSetupError, CompileError, InvalidRoleState, OutOfRangeConfig,
    InstallFailed, ClusterUnreachable, RolloutNotObserved,
)
from .token import generate_token, validate_format
from .compiler import compile_role
from .manifests import render_ingress_placement, render_storage_stack, dump_documents
from .storage_class import set_default_class, transition
from .settings import WizardSettings, get_settings, set_settings

__all__ = [
    # Models
    'NodeRole',
    'ExposureMode',
    'StorageClassState',
    'RoleRequest',
    'InstallPlan',
    'IngressPlacementConfig',
    'StorageConfig',
    'ApplyResult',

    # Errors
    'K3sSetupError',
    'CompileError',
    'InvalidRoleState',
    'OutOfRangeConfig',
    'InstallFailed',
    'ClusterUnreachable',
    'RolloutNotObserved',

    # Core operations
    'generate_token',
    'validate_format',
    'compile_role',
    'render_ingress_placement',
    'render_storage_stack',
    'dump_documents',
    'set_default_class',
    'transition',

    # Settings
    'WizardSettings',
    'get_settings',
    'set_settings',
]
