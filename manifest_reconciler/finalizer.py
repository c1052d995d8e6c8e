"""Deletion finalizer handling.

The reconciler owns a single finalizer on each resource. It is added before
any install happens and removed only once the installer has confirmed the
release was torn down, so the resource can't be removed from the cluster
while an install is outstanding.
"""

import logging

from .manifest import BaseCustomObject

__all__ = [
    "DELETION_FINALIZER",
    "has_deletion_finalizer",
    "add_deletion_finalizer",
    "remove_deletion_finalizer",
]

_LOGGER = logging.getLogger(__name__)

DELETION_FINALIZER = "deletion-finalizer"


def has_deletion_finalizer(
    obj: BaseCustomObject, finalizer: str = DELETION_FINALIZER
) -> bool:
    """Return True if the resource carries the deletion finalizer."""
    return finalizer in obj.finalizers


def add_deletion_finalizer(
    obj: BaseCustomObject, finalizer: str = DELETION_FINALIZER
) -> bool:
    """Add the deletion finalizer, returning True if the resource changed."""
    finalizers = obj.finalizers
    if finalizer in finalizers:
        return False
    _LOGGER.debug("Adding finalizer %s to %s", finalizer, obj.resource_id)
    obj.finalizers = finalizers + [finalizer]
    return True


def remove_deletion_finalizer(
    obj: BaseCustomObject, finalizer: str = DELETION_FINALIZER
) -> bool:
    """Remove the deletion finalizer, returning True if the resource changed."""
    finalizers = obj.finalizers
    if finalizer not in finalizers:
        return False
    _LOGGER.debug("Removing finalizer %s from %s", finalizer, obj.resource_id)
    obj.finalizers = [value for value in finalizers if value != finalizer]
    return True
