"""Compile operator answers into a k3s install plan.

The entry point is :func:`compile_role`, which turns a :class:`RoleRequest`
into an :class:`InstallPlan`: the ordered argument list passed to the install
script as positional arguments plus the environment bindings (``K3S_URL``,
``K3S_TOKEN``, ``INSTALL_K3S_MIRROR``) the script reads.

Argument order:
1. binary mode (``server``/``agent``) and node identity
2. server-only flags (advertise address, TLS SAN, ``--cluster-init``)
3. ``--flannel-iface`` when an overlay interface was given
4. labels, taints, ``--disable servicelb``
5. operator extra arguments, always last so they can override anything above
"""

import logging
import socket
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from ...config import Config
from .errors import InvalidRoleState
from .models import InstallPlan, NodeRole, RoleRequest
from .token import generate_token, validate_format

logger = logging.getLogger("k3s.compiler")

INGRESS_LABEL_KEY = 'ingress'
INGRESS_LABEL_VALUE = 'true'
INGRESS_LABEL = f'{INGRESS_LABEL_KEY}={INGRESS_LABEL_VALUE}'

DEDICATED_TAINT_KEY = 'dedicated'
DEDICATED_TAINT_VALUE = 'ingress'
DEDICATED_TAINT_EFFECT = 'NoSchedule'
DEDICATED_TAINT = f'{DEDICATED_TAINT_KEY}={DEDICATED_TAINT_VALUE}:{DEDICATED_TAINT_EFFECT}'


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _validate_request(request: RoleRequest) -> None:
    """Check role invariants.

    Raises:
        InvalidRoleState: naming the missing or conflicting field
    """
    if not isinstance(request.role, NodeRole):
        raise InvalidRoleState('role', f"unknown role {request.role!r}")

    if _blank(request.node_ip):
        raise InvalidRoleState('node_ip', "node IP is required")

    if request.role is NodeRole.FIRST_CONTROL_PLANE:
        if not _blank(request.peer_address):
            raise InvalidRoleState(
                'peer_address', "the first control-plane node must not join an existing peer"
            )
        if request.token is not None and not validate_format(request.token):
            raise InvalidRoleState('token', "token must not be empty or whitespace")
    else:
        if _blank(request.peer_address):
            raise InvalidRoleState(
                'peer_address', f"{request.role.value} requires the address of an existing server"
            )
        if not validate_format(request.token):
            raise InvalidRoleState(
                'token', f"{request.role.value} requires the cluster's shared token"
            )
        if request.enable_distributed_datastore:
            raise InvalidRoleState(
                'enable_distributed_datastore',
                "HA bootstrap is only valid on the first control-plane node"
            )

    if request.role is NodeRole.WORKER:
        if request.disable_builtin_lb:
            raise InvalidRoleState(
                'disable_builtin_lb', "the built-in load balancer is configured on servers"
            )
    elif request.ingress_designation:
        raise InvalidRoleState(
            'ingress_designation', "only worker nodes can be designated as ingress nodes"
        )

    if request.dedicate_ingress and not request.ingress_designation:
        raise InvalidRoleState(
            'dedicate_ingress', "the ingress taint requires ingress_designation"
        )


def merge_labels(labels: Tuple[str, ...], pinned: Optional[Dict[str, str]] = None) -> List[str]:
    """Deduplicate ``key=value`` labels by key, keeping the last value.

    Keys in ``pinned`` come first and cannot be overridden. Entries without
    ``=`` are passed through untouched.
    """
    merged: "OrderedDict[str, str]" = OrderedDict()
    for key, value in (pinned or {}).items():
        merged[key] = f'{key}={value}'

    for label in labels:
        label = label.strip()
        if not label:
            continue
        key = label.split('=', 1)[0] if '=' in label else label
        if pinned and key in pinned:
            if label != merged[key]:
                logger.warning("Ignoring label %s, %s is set by the ingress designation", label, merged[key])
            continue
        # Move re-declared keys to their latest position
        merged.pop(key, None)
        merged[key] = label
    return list(merged.values())


def _server_base(request: RoleRequest, node_name: str, node_ip: str) -> List[str]:
    args = ['server']
    if request.role is NodeRole.FIRST_CONTROL_PLANE:
        args += ['--write-kubeconfig-mode', '644']
    args += [
        '--node-name', node_name,
        '--node-ip', node_ip,
        '--advertise-address', node_ip,
        '--tls-san', node_ip,
    ]
    if request.enable_distributed_datastore:
        logger.warning(
            "Embedded etcd is sensitive to latency; keep control-plane nodes on a low-latency network"
        )
        args.append('--cluster-init')
    return args


def compile_role(request: RoleRequest) -> InstallPlan:
    """Compile a role request into an install plan.

    Compilation is pure apart from token generation, which only happens for
    the first control-plane node when no token was supplied.

    Args:
        request: Operator answers for this machine

    Returns:
        InstallPlan: arguments and environment for the install script

    Raises:
        InvalidRoleState: If the request is structurally inconsistent
    """
    _validate_request(request)

    node_ip = request.node_ip.strip()
    node_name = request.node_name.strip() if not _blank(request.node_name) else socket.gethostname()

    if request.role.is_server:
        args = _server_base(request, node_name, node_ip)
    else:
        args = ['agent', '--node-name', node_name, '--node-ip', node_ip]

    if not _blank(request.overlay_interface):
        args += ['--flannel-iface', request.overlay_interface.strip()]

    pinned = None
    taints = [t.strip() for t in request.taints if t.strip()]
    if request.ingress_designation:
        pinned = {INGRESS_LABEL_KEY: INGRESS_LABEL_VALUE}
        if request.dedicate_ingress:
            taints = [DEDICATED_TAINT] + [t for t in taints if t != DEDICATED_TAINT]

    for label in merge_labels(request.labels, pinned):
        args += ['--node-label', label]
    for taint in taints:
        args += ['--node-taint', taint]

    if request.disable_builtin_lb:
        args += ['--disable', 'servicelb']

    args += list(request.extra_args)

    token_generated = False
    token_insecure = False
    token = request.token
    if request.role is NodeRole.FIRST_CONTROL_PLANE and token is None:
        token, token_insecure = generate_token()
        token_generated = True
        logger.info("Generated a new cluster token")

    env = {'K3S_TOKEN': token.strip()}
    if request.role is not NodeRole.FIRST_CONTROL_PLANE:
        env['K3S_URL'] = f'https://{request.peer_address.strip()}:{Config.K3S_API_PORT}'
        if request.role is NodeRole.JOINING_CONTROL_PLANE:
            logger.info("Joining a control plane requires the cluster to run in HA mode")
    if request.use_cn_mirror:
        env['INSTALL_K3S_MIRROR'] = 'cn'

    plan = InstallPlan(
        role=request.role,
        args=tuple(args),
        env=env,
        token_generated=token_generated,
        token_insecure=token_insecure,
    )
    logger.debug("Compiled %s plan: %s", request.role.value, plan.install_exec)
    return plan
