import os
import tempfile
from pathlib import Path

from kubernetes import config
from kubernetes.config.config_exception import ConfigException

from ..config import Config
from ..modules.k3s.errors import ClusterUnreachable


def load_kubeconfig(path: str = None) -> str:
    """
    Load the kubeconfig from a given path, the KUBECONFIG_CONTENT env var,
    or the k3s default location. Returns the actual path used.

    Raises:
        ClusterUnreachable: If no usable kubeconfig is found
    """
    # CI/CD secret-based loading
    if "KUBECONFIG_CONTENT" in os.environ:
        with tempfile.NamedTemporaryFile("w", suffix=".yaml", prefix="k3sctl-kubeconfig-",
                                         delete=False) as f:
            f.write(os.environ["KUBECONFIG_CONTENT"])
            temp_path = f.name
        os.chmod(temp_path, 0o600)
        _load(temp_path)
        return temp_path

    resolved = Path(os.path.expanduser(path or Config.KUBECONFIG)).resolve()
    if not resolved.exists():
        raise ClusterUnreachable(
            f"Kubeconfig not found: {resolved}. Run this on a k3s server or set KUBECONFIG."
        )
    _load(str(resolved))
    return str(resolved)


def _load(path: str) -> None:
    try:
        config.load_kube_config(config_file=path)
    except ConfigException as e:
        raise ClusterUnreachable(f"Invalid kubeconfig {path}: {e}") from e
