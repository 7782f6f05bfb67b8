"""Interactive collection of operator answers.

Every function here only asks questions and returns typed values; nothing is
installed or applied.
"""
import re
import shlex
import socket
from typing import Optional, Tuple

import typer

from .models import (
    ExposureMode, IngressPlacementConfig, NodeRole, RoleRequest, StorageConfig,
)
from .settings import WizardSettings

_SEPARATORS = re.compile(r'[,\s]+')


def split_items(raw: Optional[str]) -> Tuple[str, ...]:
    """Split comma or whitespace separated input, dropping empty items."""
    if not raw:
        return ()
    return tuple(item for item in _SEPARATORS.split(raw.strip()) if item)


def split_args(raw: Optional[str]) -> Tuple[str, ...]:
    """Split extra installer arguments the way a shell would.

    Input with unbalanced quotes is split on whitespace instead.
    """
    if not raw or not raw.strip():
        return ()
    try:
        return tuple(shlex.split(raw))
    except ValueError:
        return tuple(raw.split())


def ask_non_empty(prompt: str, hide_input: bool = False) -> str:
    while True:
        value = typer.prompt(prompt, default='', show_default=False, hide_input=hide_input).strip()
        if value:
            return value
        typer.echo("Input cannot be empty, please try again.")


def ask_optional(prompt: str) -> Optional[str]:
    value = typer.prompt(prompt, default='', show_default=False).strip()
    return value or None


def ask_port(prompt: str, default: int) -> int:
    return typer.prompt(prompt, default=default, type=int)


def collect_role_request(role: NodeRole, settings: WizardSettings) -> RoleRequest:
    """Ask the questions needed to install ``role`` on this machine."""
    peer_address = None
    if role is not NodeRole.FIRST_CONTROL_PLANE:
        peer_address = ask_non_empty("Address of an existing k3s server")

    node_ip = ask_non_empty("Node IP used for cluster traffic (for example the overlay IP)")
    overlay_interface = ask_optional(
        "Overlay interface name, e.g. easytier0 (leave empty to let flannel choose)"
    )
    node_name = typer.prompt("Node name", default=socket.gethostname())

    if role is NodeRole.FIRST_CONTROL_PLANE:
        token = ask_optional("Cluster token (leave empty to generate one)")
    else:
        token = ask_non_empty("Cluster token (same as the first server)", hide_input=True)

    use_cn_mirror = typer.confirm(
        "Use the China installer mirror (INSTALL_K3S_MIRROR=cn)?", default=settings.mirror_cn
    )

    ingress_designation = False
    dedicate_ingress = False
    if role is NodeRole.WORKER:
        ingress_designation = typer.confirm(
            "Mark this node as an ingress entry node (label ingress=true)?", default=False
        )
        if ingress_designation:
            dedicate_ingress = typer.confirm(
                "Add taint dedicated=ingress:NoSchedule to keep other workloads off?", default=True
            )

    labels = split_items(ask_optional(
        "Extra node labels, comma or space separated (e.g. region=hk,zone=a)"
    ))
    taints = split_items(ask_optional(
        "Extra node taints, comma or space separated (e.g. dedicated=db:NoSchedule)"
    ))

    disable_builtin_lb = False
    enable_distributed_datastore = False
    if role.is_server:
        disable_builtin_lb = typer.confirm(
            "Disable the built-in servicelb (keep it consistent across servers)?",
            default=settings.disable_servicelb,
        )
    if role is NodeRole.FIRST_CONTROL_PLANE:
        enable_distributed_datastore = typer.confirm(
            "Enable embedded etcd for an HA control plane (--cluster-init)?", default=False
        )

    extra_args = split_args(ask_optional(f"Extra {'server' if role.is_server else 'agent'} arguments"))

    return RoleRequest(
        role=role,
        node_ip=node_ip,
        node_name=node_name,
        overlay_interface=overlay_interface,
        token=token,
        peer_address=peer_address,
        labels=labels,
        taints=taints,
        disable_builtin_lb=disable_builtin_lb,
        enable_distributed_datastore=enable_distributed_datastore,
        extra_args=extra_args,
        ingress_designation=ingress_designation,
        dedicate_ingress=dedicate_ingress,
        use_cn_mirror=use_cn_mirror,
    )


def collect_ingress_config(settings: WizardSettings) -> IngressPlacementConfig:
    """Ask where the ingress controller should run and how to expose it."""
    defaults = settings.ingress
    label_key = typer.prompt("Ingress node label key", default=defaults.label_key)
    label_value = typer.prompt("Ingress node label value", default=defaults.label_value)

    typer.echo("NodePort keeps 80/443 free for a reverse proxy in front of the cluster;")
    typer.echo("LoadBalancer needs servicelb or a cloud load balancer and may take 80/443.")
    if typer.confirm("Use NodePort mode?", default=defaults.node_port):
        mode = ExposureMode.NODE_PORT
        http_port = ask_port("HTTP NodePort", defaults.http_port)
        https_port = ask_port("HTTPS NodePort", defaults.https_port)
    else:
        mode = ExposureMode.LOAD_BALANCER
        http_port = https_port = None

    tolerate = typer.confirm(
        "Tolerate the dedicated=ingress:NoSchedule taint?", default=defaults.tolerate_dedicated_taint
    )
    return IngressPlacementConfig(
        label_key=label_key,
        label_value=label_value,
        exposure_mode=mode,
        http_port=http_port,
        https_port=https_port,
        tolerate_dedicated_taint=tolerate,
    )


def collect_storage_config(settings: WizardSettings) -> StorageConfig:
    """Ask for the NFS server backing the dynamic storage class."""
    defaults = settings.storage
    server_address = ask_non_empty("NFS server address")
    export_path = typer.prompt("NFS export path", default=defaults.export_path)
    class_name = typer.prompt("StorageClass name", default=defaults.class_name)

    typer.echo("NFS suits shared files and RWX volumes; databases are better served by local-path.")
    set_as_default = typer.confirm(
        f"Make {class_name} the default StorageClass?", default=defaults.set_as_default
    )
    return StorageConfig(
        server_address=server_address,
        export_path=export_path,
        class_name=class_name,
        set_as_default=set_as_default,
        namespace=defaults.namespace,
        provisioner_image=defaults.provisioner_image,
        archive_on_delete=defaults.archive_on_delete,
    )
