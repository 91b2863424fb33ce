"""Exceptions raised while bootstrapping an RKE2 server."""
from typing import List, Optional, Sequence


class BootstrapError(Exception):
    """Base class for every error the bootstrap can raise."""
    pass


class ConfigurationError(BootstrapError):
    """Raised when settings or the rendered RKE2 config are invalid."""
    pass


class CommandError(BootstrapError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv: List[str] = list(argv)
        self.returncode = returncode
        self.stderr = stderr or ""
        message = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if self.stderr.strip():
            message += f"\n{self.stderr.strip()}"
        super().__init__(message)


class UnsupportedDistributionError(BootstrapError):
    """Raised when the host distribution has no known package manager."""

    def __init__(self, distro_id: str):
        self.distro_id = distro_id
        super().__init__(f"Unsupported Linux distribution: {distro_id or 'unknown'}")


class NetworkError(BootstrapError):
    """Raised when the public IP lookup fails."""
    pass


class ReadinessError(BootstrapError):
    """Raised when the service or node does not become ready in time."""
    pass


class CredentialsError(BootstrapError):
    """Raised when cluster credentials are missing or empty."""
    pass


class StepFailed(BootstrapError):
    """Raised by the pipeline when a single step fails.

    Carries the step id and the original exception as ``__cause__``.
    """

    def __init__(self, step_id: str, description: str, cause: Optional[BaseException] = None):
        self.step_id = step_id
        self.description = description
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Step '{step_id}' ({description}) failed{detail}")
