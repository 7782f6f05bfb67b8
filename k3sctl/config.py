"""Configuration management for the k3sctl application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # Installer
    K3S_INSTALL_SCRIPT_URL: str = os.getenv("K3S_INSTALL_SCRIPT_URL", "https://get.k3s.io")
    K3S_API_PORT: int = int(os.getenv("K3S_API_PORT", "6443"))
    KUBECONFIG: str = os.getenv("KUBECONFIG", "/etc/rancher/k3s/k3s.yaml")

    # Timeouts (in seconds)
    HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", "30"))
    INSTALL_TIMEOUT: int = int(os.getenv("INSTALL_TIMEOUT", "900"))  # 15 minutes
    ROLLOUT_TIMEOUT: int = int(os.getenv("ROLLOUT_TIMEOUT", "180"))
    ROLLOUT_POLL_INTERVAL: float = float(os.getenv("ROLLOUT_POLL_INTERVAL", "5"))

    # OS-level steps handed off to operator supplied scripts
    NODE_PREP_SCRIPT: str = os.getenv("NODE_PREP_SCRIPT", "")
    NFS_SERVER_SCRIPT: str = os.getenv("NFS_SERVER_SCRIPT", "")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Security
    REDACT_KEYS: tuple = ("token", "password", "secret")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not cls.K3S_INSTALL_SCRIPT_URL.startswith(("https://", "http://")):
            raise ValueError(
                f"K3S_INSTALL_SCRIPT_URL must be an http(s) URL, got: {cls.K3S_INSTALL_SCRIPT_URL}"
            )
        if not 0 < cls.K3S_API_PORT < 65536:
            raise ValueError(f"K3S_API_PORT out of range: {cls.K3S_API_PORT}")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
