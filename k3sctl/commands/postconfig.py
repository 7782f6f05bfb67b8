"""Post-install cluster configuration: ingress placement and NFS storage."""

import logging
from typing import Optional

import typer
from kubernetes.client.rest import ApiException

from . import fail
from ..modules.k3s.applier import ClusterApplier
from ..modules.k3s.errors import K3sSetupError
from ..modules.k3s.health import check_cluster_health, format_health, list_nodes
from ..modules.k3s.manifests import dump_documents, render_ingress_placement, render_storage_stack
from ..modules.k3s.models import ExposureMode, IngressPlacementConfig, StorageConfig
from ..modules.k3s.orchestrator import PostConfigWizard
from ..modules.k3s.prompts import collect_ingress_config, collect_storage_config
from ..modules.k3s.settings import get_settings

logger = logging.getLogger("postconfig")

app = typer.Typer(help="Configure a running cluster (run on a k3s server)")


def _report(name: str, result) -> None:
    readiness = {True: 'ready', False: 'not confirmed within the wait budget', None: 'not checked'}
    typer.echo(f"✅ {name}: applied {len(result.objects)} object(s), rollout {readiness[result.ready]}")


@app.command("ingress")
def ingress(
    label_key: Optional[str] = typer.Option(None, '--label-key', help='Ingress node label key'),
    label_value: Optional[str] = typer.Option(None, '--label-value', help='Ingress node label value'),
    mode: Optional[ExposureMode] = typer.Option(None, '--mode', help='Service exposure mode'),
    http_port: Optional[int] = typer.Option(None, '--http-port', help='HTTP NodePort'),
    https_port: Optional[int] = typer.Option(None, '--https-port', help='HTTPS NodePort'),
    tolerate: Optional[bool] = typer.Option(
        None, '--tolerate/--no-tolerate', help='Tolerate dedicated=ingress:NoSchedule'
    ),
    interactive: bool = typer.Option(False, '--interactive', '-i', help='Ask for every value'),
    render_only: bool = typer.Option(False, '--render-only', help='Print the manifest and exit'),
):
    """Pin the ingress controller to ingress nodes and choose its exposure."""
    settings = get_settings()
    defaults = settings.ingress
    if interactive:
        config = collect_ingress_config(settings)
    else:
        if mode is None:
            mode = ExposureMode.NODE_PORT if defaults.node_port else ExposureMode.LOAD_BALANCER
        config = IngressPlacementConfig(
            label_key=label_key or defaults.label_key,
            label_value=label_value if label_value is not None else defaults.label_value,
            exposure_mode=mode,
            http_port=http_port if http_port is not None else defaults.http_port,
            https_port=https_port if https_port is not None else defaults.https_port,
            tolerate_dedicated_taint=defaults.tolerate_dedicated_taint if tolerate is None else tolerate,
        )

    try:
        if render_only:
            typer.echo(dump_documents([render_ingress_placement(config)]), nl=False)
            return
        result = PostConfigWizard().configure_ingress(config)
    except (K3sSetupError, ApiException) as e:
        fail(logger, e)
        return
    _report("Ingress placement", result)


@app.command("storage")
def storage(
    server: Optional[str] = typer.Option(None, '--server', '-s', help='NFS server address'),
    path: Optional[str] = typer.Option(None, '--path', help='NFS export path'),
    class_name: Optional[str] = typer.Option(None, '--class-name', help='StorageClass name'),
    default: Optional[bool] = typer.Option(
        None, '--default/--no-default', help='Make the class the cluster default'
    ),
    render_only: bool = typer.Option(False, '--render-only', help='Print the manifests and exit'),
):
    """Deploy the NFS dynamic provisioner and its StorageClass."""
    settings = get_settings()
    defaults = settings.storage
    if server is None:
        config = collect_storage_config(settings)
    else:
        config = StorageConfig(
            server_address=server,
            export_path=path or defaults.export_path,
            class_name=class_name or defaults.class_name,
            set_as_default=defaults.set_as_default if default is None else default,
            namespace=defaults.namespace,
            provisioner_image=defaults.provisioner_image,
            archive_on_delete=defaults.archive_on_delete,
        )

    try:
        if render_only:
            typer.echo(dump_documents(render_storage_stack(config)), nl=False)
            return
        result = PostConfigWizard().deploy_storage(config)
    except (K3sSetupError, ApiException) as e:
        fail(logger, e)
        return
    _report(f"StorageClass {config.class_name}", result)


def run_wizard(applier: Optional[ClusterApplier] = None) -> None:
    """Interactive post-config wizard for the first control-plane node.

    Raises:
        ClusterUnreachable: Before any question is asked, if no cluster answers
    """
    settings = get_settings()
    wizard = PostConfigWizard(applier)
    wizard.connect()

    typer.echo("==== Nodes ====")
    for node in list_nodes(wizard.applier.core_api):
        status = 'Ready' if node['ready'] else 'NotReady'
        typer.echo(f"{node['name']:<30} {status:<9} {node['internal_ip']}")

    ingress_config = None
    if typer.confirm("Pin the ingress controller to ingress-labelled nodes (optionally NodePort)?",
                     default=True):
        ingress_config = collect_ingress_config(settings)
    else:
        typer.echo("Skipped ingress configuration.")

    storage_config = None
    if typer.confirm("Deploy NFS dynamic storage (nfs-subdir-external-provisioner)?", default=True):
        storage_config = collect_storage_config(settings)
    else:
        typer.echo("Skipped NFS dynamic storage.")

    results = wizard.run(ingress=ingress_config, storage=storage_config)
    if 'ingress' in results:
        _report("Ingress placement", results['ingress'])
    if 'storage' in results:
        _report(f"StorageClass {storage_config.class_name}", results['storage'])

    typer.echo("")
    health = check_cluster_health(wizard.applier.core_api, wizard.applier.storage_api)
    typer.echo(format_health(health))


@app.command("wizard")
def wizard():
    """Walk through ingress placement and NFS storage interactively."""
    try:
        run_wizard()
    except (K3sSetupError, ApiException) as e:
        fail(logger, e)
