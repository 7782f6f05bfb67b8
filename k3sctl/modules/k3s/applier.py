"""Apply manifests to a live cluster and watch rollouts."""
import logging
import time
from typing import List, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient
from urllib3.exceptions import HTTPError

from ...config import Config
from ...utils.kube import load_kubeconfig
from .errors import ClusterUnreachable, RolloutNotObserved
from .models import ApplyResult, ManifestDocument

logger = logging.getLogger("k3s.applier")

MERGE_PATCH = 'application/merge-patch+json'


def _describe(doc: ManifestDocument) -> str:
    meta = doc.get('metadata', {})
    if meta.get('namespace'):
        return f"{doc['kind']}/{meta['namespace']}/{meta['name']}"
    return f"{doc['kind']}/{meta['name']}"


class ClusterApplier:
    """Sends manifest documents to the cluster the kubeconfig points at."""

    def __init__(
        self,
        api_client: Optional[client.ApiClient] = None,
        kubeconfig: Optional[str] = None,
        rollout_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        """Initialize the applier.

        Args:
            api_client: Pre-built API client; when None one is created by :meth:`connect`
            kubeconfig: Path to a kubeconfig (default: ``Config.KUBECONFIG``)
            rollout_timeout: Seconds to wait for a deployment to become ready
            poll_interval: Seconds between readiness checks
        """
        self.api_client = api_client
        self.kubeconfig = kubeconfig
        self.rollout_timeout = Config.ROLLOUT_TIMEOUT if rollout_timeout is None else rollout_timeout
        self.poll_interval = Config.ROLLOUT_POLL_INTERVAL if poll_interval is None else poll_interval
        self._dynamic = None

    def connect(self) -> 'ClusterApplier':
        """Load credentials and check that the API server answers.

        Raises:
            ClusterUnreachable: If no kubeconfig is usable or the API is down
        """
        if self.api_client is None:
            path = load_kubeconfig(self.kubeconfig)
            logger.debug(f"Loaded kubeconfig from {path}")
            self.api_client = client.ApiClient()

        try:
            client.VersionApi(self.api_client).get_code()
        except (ApiException, HTTPError, OSError) as e:
            raise ClusterUnreachable(f"Kubernetes API is not reachable: {e}") from e
        return self

    @property
    def core_api(self) -> client.CoreV1Api:
        return client.CoreV1Api(self.api_client)

    @property
    def apps_api(self) -> client.AppsV1Api:
        return client.AppsV1Api(self.api_client)

    @property
    def storage_api(self) -> client.StorageV1Api:
        return client.StorageV1Api(self.api_client)

    @property
    def dynamic(self) -> DynamicClient:
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    def apply(self, documents: List[ManifestDocument]) -> List[str]:
        """Create each document, patching it when it already exists.

        Returns:
            Descriptions of the applied objects, in order

        Raises:
            ApiException: If the API server rejects a document
            ClusterUnreachable: If the connection to the API server is lost
        """
        applied = []
        for doc in documents:
            if not doc or not doc.get("kind") or not doc.get("apiVersion"):
                continue
            try:
                self._apply_one(doc)
            except (HTTPError, OSError) as e:
                raise ClusterUnreachable(
                    f"Lost connection to the Kubernetes API while applying {_describe(doc)} "
                    f"({len(applied)} of {len(documents)} applied): {e}"
                ) from e
            applied.append(_describe(doc))
        return applied

    def _apply_one(self, doc: ManifestDocument) -> None:
        kind = doc["kind"]
        name = doc["metadata"]["name"]
        resource = self.dynamic.resources.get(api_version=doc["apiVersion"], kind=kind)
        namespace = doc["metadata"].get("namespace") if resource.namespaced else None

        try:
            logger.info(f"📄 Applying {_describe(doc)}")
            resource.create(body=doc, namespace=namespace)
        except ApiException as e:
            if e.status != 409:
                raise
            logger.info(f"↪️ {kind} {name} exists. Patching...")
            resource.patch(body=doc, name=name, namespace=namespace, content_type=MERGE_PATCH)

    def _deployment_ready(self, namespace: str, name: str) -> bool:
        try:
            dep = self.apps_api.read_namespaced_deployment(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        except (HTTPError, OSError) as e:
            # Retried until the rollout deadline
            logger.debug(f"Readiness check for {namespace}/{name} failed: {e}")
            return False

        desired = dep.spec.replicas if dep.spec.replicas is not None else 1
        status = dep.status
        return (
            (status.observed_generation or 0) >= (dep.metadata.generation or 0)
            and (status.updated_replicas or 0) >= desired
            and (status.available_replicas or 0) >= desired
        )

    def wait_for_rollout(self, namespace: str, name: str, timeout: Optional[float] = None) -> None:
        """Wait for a deployment to finish rolling out.

        Raises:
            RolloutNotObserved: If the deployment is not ready within ``timeout``
        """
        timeout = self.rollout_timeout if timeout is None else timeout
        logger.info(f"⏳ Waiting for deployment {namespace}/{name} (timeout: {timeout:.0f}s)")
        deadline = time.monotonic() + timeout

        while True:
            if self._deployment_ready(namespace, name):
                logger.info(f"✅ Deployment {namespace}/{name} is ready")
                return
            if time.monotonic() >= deadline:
                raise RolloutNotObserved(namespace, name, timeout)
            time.sleep(self.poll_interval)

    def apply_and_wait(
        self, documents: List[ManifestDocument], namespace: str, deployment: str
    ) -> ApplyResult:
        """Apply documents, then wait for ``deployment`` on a best-effort basis."""
        objects = self.apply(documents)
        ready = self.observe_rollout(namespace, deployment)
        return ApplyResult(applied=True, ready=ready, objects=objects)

    def observe_rollout(self, namespace: str, deployment: str) -> bool:
        """Wait for ``deployment``, logging a warning instead of failing on timeout."""
        try:
            self.wait_for_rollout(namespace, deployment)
        except RolloutNotObserved as e:
            logger.warning(f"⚠️  {e}; the manifests were applied, check the rollout later")
            return False
        return True
