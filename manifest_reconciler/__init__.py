"""
manifest-reconciler drives custom resources that declare a chart to install
toward their desired state on a target cluster.

The entry point is `manifest_reconciler.reconciler.ManifestReconciler`, invoked
by an external scheduler once per delivery of a resource key.
"""

__all__ = [
    "accessor",
    "client",
    "config",
    "exceptions",
    "finalizer",
    "install_info",
    "installer",
    "manifest",
    "reconciler",
    "strvals",
]
