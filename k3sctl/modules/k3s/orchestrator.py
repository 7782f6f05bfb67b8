"""Sequencing of node installation and post-config steps."""
import logging
import os
from typing import Callable, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ...config import Config
from .applier import ClusterApplier
from .compiler import compile_role
from .errors import CompileError, K3sSetupError
from .installer import run_install
from .manifests import (
    INGRESS_CHART_NAME, INGRESS_NAMESPACE, PROVISIONER_NAME,
    render_ingress_placement, render_storage_stack,
)
from .models import (
    ApplyResult, ExposureMode, IngressPlacementConfig, InstallPlan, NodeRole,
    RoleRequest, StorageConfig,
)
from .storage_class import find_conflicting_class, set_default_class

logger = logging.getLogger("k3s.orchestrator")

ROLE_TITLES = {
    NodeRole.FIRST_CONTROL_PLANE: 'server (first control plane)',
    NodeRole.JOINING_CONTROL_PLANE: 'server (joining control plane)',
    NodeRole.WORKER: 'agent (worker)',
}


def get_template_path() -> str:
    """Get the absolute path to the templates directory."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')


def render_summary(plan: InstallPlan, request: RoleRequest) -> str:
    """Render the confirmation summary shown before installing."""
    env = Environment(
        loader=FileSystemLoader(get_template_path()),
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )
    template = env.get_template('install_summary.txt.j2')
    return template.render(
        role_title=ROLE_TITLES[plan.role],
        node_ip=request.node_ip,
        overlay_interface=request.overlay_interface,
        node_name=plan.args[plan.args.index('--node-name') + 1],
        join_url=plan.join_url,
        show_token=plan.role is NodeRole.FIRST_CONTROL_PLANE,
        token=plan.token,
        token_insecure=plan.token_insecure,
        mirror=plan.env.get('INSTALL_K3S_MIRROR'),
        install_exec=plan.install_exec,
    )


def require_root() -> None:
    """Refuse to install unless running as root."""
    if hasattr(os, 'geteuid') and os.geteuid() != 0:
        raise K3sSetupError("Installing k3s requires root, re-run with sudo")


def install_node(
    request: RoleRequest,
    confirm: Callable[[str], bool],
    dry_run: bool = False,
    runner: Callable[..., None] = run_install,
) -> Optional[InstallPlan]:
    """Compile, confirm and install one node role.

    Args:
        request: Operator answers for this machine
        confirm: Called with the rendered summary; returning False aborts
        dry_run: Compile and show the plan without running the installer
        runner: Installer boundary, ``run_install`` by default

    Returns:
        The executed plan, or None if the operator declined

    Raises:
        InvalidRoleState: If the request is inconsistent (nothing is executed)
        InstallFailed: If the installer exits non-zero
    """
    plan = compile_role(request)
    if plan.token_insecure:
        logger.warning("⚠️  The cluster token is an insecure placeholder; do not use it in production")

    if not confirm(render_summary(plan, request)):
        logger.info("Installation cancelled by operator")
        return None

    runner(plan, dry_run=dry_run)
    return plan


def post_install_hints(plan: InstallPlan) -> str:
    if plan.role is NodeRole.FIRST_CONTROL_PLANE:
        return (
            "Installation finished:\n"
            "  Check nodes : sudo kubectl get node\n"
            f"  kubeconfig  : {Config.KUBECONFIG}\n"
            f"  TOKEN (save it): {plan.token}"
        )
    return "Installation finished, run 'sudo kubectl get node' on any server to check."


class PostConfigWizard:
    """Applies ingress placement and NFS storage to a running cluster."""

    def __init__(self, applier: Optional[ClusterApplier] = None):
        self.applier = applier or ClusterApplier()
        self._connected = False

    def connect(self) -> None:
        """Raises ClusterUnreachable when no cluster can be reached."""
        if not self._connected:
            self.applier.connect()
            self._connected = True

    def configure_ingress(self, config: IngressPlacementConfig) -> ApplyResult:
        """Pin the ingress controller to labelled nodes and apply its exposure mode."""
        document = render_ingress_placement(config)
        self.connect()
        logger.info(
            f"Placing {INGRESS_CHART_NAME} on nodes with {config.label_key}={config.label_value} "
            f"({ExposureMode(config.exposure_mode).value})"
        )
        result = self.applier.apply_and_wait([document], INGRESS_NAMESPACE, INGRESS_CHART_NAME)
        if ExposureMode(config.exposure_mode) is ExposureMode.NODE_PORT:
            logger.info(
                "Point your reverse proxy at the ingress nodes: "
                f"http -> <node-ip>:{config.http_port}, https -> <node-ip>:{config.https_port}"
            )
        return result

    def deploy_storage(self, config: StorageConfig) -> ApplyResult:
        """Deploy the NFS provisioner and, when asked, make its class the default."""
        documents = render_storage_stack(config)
        self.connect()

        owner = find_conflicting_class(self.applier.storage_api, config.class_name,
                                       config.provisioner_name)
        if owner:
            raise CompileError(
                'class_name',
                f"StorageClass {config.class_name} already exists with provisioner {owner}"
            )

        logger.info(f"Deploying NFS dynamic StorageClass {config.class_name}")
        objects = self.applier.apply(documents)

        # The class is applied as non-default; promote it before the rollout wait
        if config.set_as_default:
            set_default_class(self.applier.storage_api, config.class_name)

        ready = self.applier.observe_rollout(config.namespace, PROVISIONER_NAME)
        return ApplyResult(applied=True, ready=ready, objects=objects)

    def run(
        self,
        ingress: Optional[IngressPlacementConfig] = None,
        storage: Optional[StorageConfig] = None,
    ) -> Dict[str, ApplyResult]:
        """Run the selected post-config steps.

        Both configurations are rendered before the cluster is contacted, so
        a bad value or an unreachable cluster leaves the cluster untouched.
        """
        if ingress is not None:
            render_ingress_placement(ingress)
        if storage is not None:
            render_storage_stack(storage)

        results: Dict[str, ApplyResult] = {}
        if ingress is None and storage is None:
            logger.info("No post-config steps selected")
            return results

        self.connect()
        if ingress is not None:
            results['ingress'] = self.configure_ingress(ingress)
        else:
            logger.info("Skipped ingress placement")
        if storage is not None:
            results['storage'] = self.deploy_storage(storage)
        else:
            logger.info("Skipped NFS dynamic storage")
        return results
