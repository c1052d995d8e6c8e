"""Exceptions related to manifest-reconciler."""

__all__ = [
    "ReconcilerException",
    "TypeMismatchError",
    "BuildError",
    "InstallerError",
    "ConflictError",
    "ObjectNotFoundError",
    "CommandException",
    "HelmException",
]


class ReconcilerException(Exception):
    """Generic base exception used for this library."""


class TypeMismatchError(ReconcilerException):
    """Raised when a resource is neither a typed nor an unstructured object."""

    def __init__(self, resource_name: str) -> None:
        super().__init__(
            f"invalid custom resource object type for reconciliation {resource_name}"
        )
        self.resource_name = resource_name


class BuildError(ReconcilerException):
    """Raised when the install context for a resource can't be assembled."""


class InstallerError(ReconcilerException):
    """Raised by an installer when an install or uninstall fails."""

    def __init__(self, release_name: str, message: str | None) -> None:
        super().__init__(
            f"Release {release_name} failed: {message or 'Unknown error'}"
        )
        self.release_name = release_name
        self.message = message


class ConflictError(ReconcilerException):
    """Raised when a write is based on a stale resource version."""

    def __init__(self, resource_name: str, expected: str | None, actual: str) -> None:
        super().__init__(
            f"Operation cannot be fulfilled on {resource_name}: the object has been "
            f"modified (resourceVersion {expected}, current {actual})"
        )
        self.resource_name = resource_name
        self.expected = expected
        self.actual = actual


class ObjectNotFoundError(ReconcilerException):
    """Raised when an object is not found in the cluster."""


class CommandException(ReconcilerException):
    """Raised when there is a failure running a subcommand."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""
