"""Error types raised by the k3s installer core."""


class K3sSetupError(Exception):
    """Base class for all k3sctl errors."""
    pass


class CompileError(K3sSetupError):
    """Raised before any external side effect when input cannot be compiled."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class InvalidRoleState(CompileError):
    """A RoleRequest is missing a field or combines fields that conflict."""
    pass


class OutOfRangeConfig(CompileError):
    """A configuration value lies outside its legal range."""

    def __init__(self, field: str, value, message: str):
        self.value = value
        super().__init__(field, message)


class InstallFailed(K3sSetupError):
    """The external installer exited non-zero."""

    def __init__(self, returncode: int, message: str = ""):
        self.returncode = returncode
        super().__init__(message or f"Installer exited with status {returncode}")


class ClusterUnreachable(K3sSetupError):
    """No usable cluster credentials or API endpoint."""
    pass


class RolloutNotObserved(K3sSetupError):
    """A readiness wait timed out. Callers treat this as a warning."""

    def __init__(self, namespace: str, name: str, timeout: float):
        self.namespace = namespace
        self.name = name
        self.timeout = timeout
        super().__init__(
            f"Deployment {namespace}/{name} not ready after {timeout:.0f}s"
        )
