class ScanSetupError(Exception):
    """Raised before any traversal starts when a scan cannot be set up."""


class TargetNotFound(ScanSetupError):
    """The target file does not exist or cannot be accessed."""

    def __init__(self, path, cause: OSError | None = None):
        self.path = path
        self.cause = cause
        message = f"cannot access target file {path}"
        if cause is not None and cause.strerror:
            message = f"{message}: {cause.strerror}"
        super().__init__(message)


class HardlinkUnsupported(ScanSetupError):
    """Hard link detection was requested where inode identity is unavailable."""
