"""k3sctl - node-role installer and post-config wizard for k3s clusters."""

__version__ = "0.1.0"
