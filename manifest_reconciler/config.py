"""Configuration objects for manifest-reconciler."""

from dataclasses import dataclass, field
from pathlib import Path

from .finalizer import DELETION_FINALIZER


@dataclass
class ReconcilerConfig:
    """Configuration for the ManifestReconciler."""

    finalizer: str = DELETION_FINALIZER
    """Name of the finalizer owned by the reconciler."""

    resource_labels: dict[str, str] = field(default_factory=dict)
    """Labels added to every managed resource before processing starts."""

    kubeconfig: Path | None = None
    """Kubeconfig for the target cluster, or None for the ambient config."""

    kube_context: str | None = None
    """Context within the kubeconfig of the target cluster."""

    check_ready_states: bool = True
    """Evaluate the readiness check after an install completes."""

    progress_requeue_after: float | None = 10.0
    """Requeue hint in seconds while an install or uninstall is in progress.

    With None an in-progress pass returns no hint, and the resource only makes
    progress when another event for it is delivered.
    """

    max_conditions: int = 10
    """Maximum number of conditions kept in the status history."""


@dataclass
class HelmInstallerConfig:
    """Configuration for the HelmInstaller."""

    helm_binary: str = "helm"
    """Path to the helm executable."""

    force: bool = False
    """Force resource updates through a replacement strategy."""

    verify: bool = False
    """Verify the chart package before installing it."""

    wait: bool = False
    """Wait until installed resources are ready before reporting completion."""

    timeout: str | None = None
    """Time to wait for any individual kubernetes operation, e.g. `5m`."""
