class LauncherError(Exception):
    """Base exception for mc_launcher."""


class ValidationError(LauncherError):
    """Raised when an operation is not allowed in the current server state."""


class ProcessError(LauncherError):
    """Raised when the server process cannot be launched."""


class ResponseTimeout(LauncherError, TimeoutError):
    """Raised when an expected response does not arrive in time."""


class AuthError(LauncherError):
    """Raised when RCON authentication is rejected or cannot complete."""


class ConnectionClosed(LauncherError, ConnectionError):
    """Raised for RCON operations on a closed or failed session."""


class ProtocolError(LauncherError):
    """Raised when RCON framing cannot be encoded or decoded."""


class VersionResolutionError(LauncherError):
    """Raised when a requested version or catalog file cannot be resolved."""


class DownloadError(LauncherError):
    """Raised when an artifact download fails."""


class InstallError(LauncherError):
    """Raised when server installation fails."""
