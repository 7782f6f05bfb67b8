import logging

import typer
from kubernetes.client.rest import ApiException

from . import fail
from ..modules.k3s.applier import ClusterApplier
from ..modules.k3s.errors import K3sSetupError
from ..modules.k3s.health import check_cluster_health, format_health

logger = logging.getLogger("check")

app = typer.Typer(help="Quick cluster check (needs a kubeconfig)")


def run_check(applier: ClusterApplier = None) -> dict:
    """Print nodes, storage classes and kube-system pods."""
    applier = applier or ClusterApplier()
    applier.connect()
    health = check_cluster_health(applier.core_api, applier.storage_api)
    typer.echo(format_health(health))
    return health


@app.callback(invoke_without_command=True)
def check():
    """Show nodes, storage classes and kube-system pods."""
    try:
        health = run_check()
    except (K3sSetupError, ApiException) as e:
        fail(logger, e)
        return
    if not health['healthy']:
        logger.warning("⚠️  Cluster check reported issues")
