"""Node installation commands.

Each command installs one role on the machine it runs on. Without
``--node-ip`` the command asks its questions interactively.
"""

import logging
from typing import List, Optional

import typer

from . import fail
from ..modules.k3s.errors import K3sSetupError
from ..modules.k3s.models import NodeRole, RoleRequest
from ..modules.k3s.orchestrator import install_node, post_install_hints, require_root
from ..modules.k3s.prompts import collect_role_request, split_args, split_items
from ..modules.k3s.settings import get_settings

logger = logging.getLogger("install")

app = typer.Typer(help="Install k3s on this machine")


def _flatten(values: Optional[List[str]]) -> tuple:
    items = []
    for value in values or []:
        items.extend(split_items(value))
    return tuple(items)


def confirm_summary(assume_yes: bool):
    def confirm(summary: str) -> bool:
        typer.echo("")
        typer.echo(summary)
        if assume_yes:
            return True
        return typer.confirm("Continue?", default=True)
    return confirm


def run_role(request: RoleRequest, assume_yes: bool = False, dry_run: bool = False) -> None:
    """Install a compiled role, reporting errors the same way for every command."""
    try:
        if not dry_run:
            require_root()
        plan = install_node(request, confirm=confirm_summary(assume_yes), dry_run=dry_run)
    except K3sSetupError as e:
        fail(logger, e)
        return

    if plan is None:
        typer.echo("Cancelled.")
    elif not dry_run:
        typer.echo(post_install_hints(plan))


@app.command("first")
def first(
    node_ip: Optional[str] = typer.Option(None, '--node-ip', help='Node IP used for cluster traffic'),
    node_name: Optional[str] = typer.Option(None, '--node-name', help='Node name (default: hostname)'),
    iface: Optional[str] = typer.Option(None, '--iface', help='Overlay interface for flannel'),
    token: Optional[str] = typer.Option(None, '--token', help='Cluster token (generated if omitted)'),
    label: Optional[List[str]] = typer.Option(None, '--label', '-l', help='Node label key=value'),
    taint: Optional[List[str]] = typer.Option(None, '--taint', '-t', help='Node taint key=value:Effect'),
    disable_servicelb: bool = typer.Option(
        True, '--disable-servicelb/--keep-servicelb', help='Disable the built-in servicelb'
    ),
    ha: bool = typer.Option(False, '--ha', help='Bootstrap embedded etcd (--cluster-init)'),
    extra_args: str = typer.Option('', '--extra-args', help='Extra server arguments, appended last'),
    mirror_cn: bool = typer.Option(False, '--mirror-cn', help='Use INSTALL_K3S_MIRROR=cn'),
    yes: bool = typer.Option(False, '--yes', '-y', help='Skip the confirmation prompt'),
    dry_run: bool = typer.Option(False, '--dry-run', help='Show the plan without installing'),
):
    """Install the first k3s server (control plane)."""
    if node_ip is None:
        request = collect_role_request(NodeRole.FIRST_CONTROL_PLANE, get_settings())
    else:
        request = RoleRequest(
            role=NodeRole.FIRST_CONTROL_PLANE,
            node_ip=node_ip,
            node_name=node_name,
            overlay_interface=iface,
            token=token,
            labels=_flatten(label),
            taints=_flatten(taint),
            disable_builtin_lb=disable_servicelb,
            enable_distributed_datastore=ha,
            extra_args=split_args(extra_args),
            use_cn_mirror=mirror_cn,
        )
    run_role(request, assume_yes=yes, dry_run=dry_run)


@app.command("join")
def join(
    server: Optional[str] = typer.Option(None, '--server', '-s', help='Address of an existing server'),
    token: Optional[str] = typer.Option(None, '--token', help='Cluster token'),
    node_ip: Optional[str] = typer.Option(None, '--node-ip', help='Node IP used for cluster traffic'),
    node_name: Optional[str] = typer.Option(None, '--node-name', help='Node name (default: hostname)'),
    iface: Optional[str] = typer.Option(None, '--iface', help='Overlay interface for flannel'),
    label: Optional[List[str]] = typer.Option(None, '--label', '-l', help='Node label key=value'),
    taint: Optional[List[str]] = typer.Option(None, '--taint', '-t', help='Node taint key=value:Effect'),
    disable_servicelb: bool = typer.Option(
        True, '--disable-servicelb/--keep-servicelb', help='Disable the built-in servicelb'
    ),
    extra_args: str = typer.Option('', '--extra-args', help='Extra server arguments, appended last'),
    mirror_cn: bool = typer.Option(False, '--mirror-cn', help='Use INSTALL_K3S_MIRROR=cn'),
    yes: bool = typer.Option(False, '--yes', '-y', help='Skip the confirmation prompt'),
    dry_run: bool = typer.Option(False, '--dry-run', help='Show the plan without installing'),
):
    """Join this machine to an existing control plane."""
    if node_ip is None:
        request = collect_role_request(NodeRole.JOINING_CONTROL_PLANE, get_settings())
    else:
        request = RoleRequest(
            role=NodeRole.JOINING_CONTROL_PLANE,
            node_ip=node_ip,
            node_name=node_name,
            overlay_interface=iface,
            token=token,
            peer_address=server,
            labels=_flatten(label),
            taints=_flatten(taint),
            disable_builtin_lb=disable_servicelb,
            extra_args=split_args(extra_args),
            use_cn_mirror=mirror_cn,
        )
    run_role(request, assume_yes=yes, dry_run=dry_run)


@app.command("worker")
def worker(
    server: Optional[str] = typer.Option(None, '--server', '-s', help='Address of any server'),
    token: Optional[str] = typer.Option(None, '--token', help='Cluster token'),
    node_ip: Optional[str] = typer.Option(None, '--node-ip', help='Node IP used for cluster traffic'),
    node_name: Optional[str] = typer.Option(None, '--node-name', help='Node name (default: hostname)'),
    iface: Optional[str] = typer.Option(None, '--iface', help='Overlay interface for flannel'),
    ingress: bool = typer.Option(False, '--ingress', help='Designate as ingress node (ingress=true)'),
    dedicate_ingress: bool = typer.Option(
        False, '--dedicate-ingress', help='Also taint dedicated=ingress:NoSchedule'
    ),
    label: Optional[List[str]] = typer.Option(None, '--label', '-l', help='Node label key=value'),
    taint: Optional[List[str]] = typer.Option(None, '--taint', '-t', help='Node taint key=value:Effect'),
    extra_args: str = typer.Option('', '--extra-args', help='Extra agent arguments, appended last'),
    mirror_cn: bool = typer.Option(False, '--mirror-cn', help='Use INSTALL_K3S_MIRROR=cn'),
    yes: bool = typer.Option(False, '--yes', '-y', help='Skip the confirmation prompt'),
    dry_run: bool = typer.Option(False, '--dry-run', help='Show the plan without installing'),
):
    """Install a k3s agent (worker or ingress node)."""
    if node_ip is None:
        request = collect_role_request(NodeRole.WORKER, get_settings())
    else:
        request = RoleRequest(
            role=NodeRole.WORKER,
            node_ip=node_ip,
            node_name=node_name,
            overlay_interface=iface,
            token=token,
            peer_address=server,
            labels=_flatten(label),
            taints=_flatten(taint),
            extra_args=split_args(extra_args),
            ingress_designation=ingress,
            dedicate_ingress=dedicate_ingress,
            use_cn_mirror=mirror_cn,
        )
    run_role(request, assume_yes=yes, dry_run=dry_run)
