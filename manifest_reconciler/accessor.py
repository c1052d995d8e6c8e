"""Uniform access to the spec and status of either resource representation.

The reconciler never branches on how a resource is represented. All reads and
writes of `spec` and `status` go through the functions in this module, which
select between the typed and the unstructured implementation at the boundary.
Any other object is rejected with a `TypeMismatchError`.
"""

import copy
import logging
from typing import Any

from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import TypeMismatchError
from .manifest import (
    CustomObject,
    CustomObjectSpec,
    CustomObjectStatus,
    UnstructuredObject,
)

__all__ = [
    "get_spec",
    "get_status",
    "set_status",
    "component_name",
    "to_unstructured",
]

_LOGGER = logging.getLogger(__name__)


def _object_name(obj: Any) -> str:
    """Best effort identifier of an object for error messages."""
    if (resource_id := getattr(obj, "resource_id", None)) is not None:
        return str(resource_id)
    return type(obj).__name__


def _nested_map(obj: UnstructuredObject, key: str) -> dict[str, Any]:
    """Return the mapping at `key`, or an empty mapping when absent."""
    value = obj.object.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeMismatchError(
            f"{_object_name(obj)} ({key} is {type(value).__name__}, expected a map)"
        )
    return value


def get_spec(obj: Any) -> CustomObjectSpec:
    """Return the declared spec of the resource."""
    if isinstance(obj, CustomObject):
        return obj.spec
    if isinstance(obj, UnstructuredObject):
        try:
            return CustomObjectSpec.from_dict(_nested_map(obj, "spec"))
        except (MissingField, InvalidFieldValue, ValueError) as err:
            raise TypeMismatchError(
                f"{_object_name(obj)} (unable to get spec from unstructured: {err})"
            ) from err
    raise TypeMismatchError(_object_name(obj))


def get_status(obj: Any) -> CustomObjectStatus:
    """Return a copy of the observed status of the resource."""
    if isinstance(obj, CustomObject):
        return copy.deepcopy(obj.status)
    if isinstance(obj, UnstructuredObject):
        try:
            return CustomObjectStatus.from_dict(_nested_map(obj, "status"))
        except (MissingField, InvalidFieldValue, ValueError) as err:
            raise TypeMismatchError(
                f"{_object_name(obj)} (unable to get status from unstructured: {err})"
            ) from err
    raise TypeMismatchError(_object_name(obj))


def set_status(obj: Any, status: CustomObjectStatus) -> None:
    """Replace the status of the in-memory resource.

    Persisting the change is the responsibility of the caller.
    """
    if isinstance(obj, CustomObject):
        obj.status = copy.deepcopy(status)
        return
    if isinstance(obj, UnstructuredObject):
        obj.object["status"] = status.to_dict()
        return
    raise TypeMismatchError(_object_name(obj))


def component_name(obj: Any) -> str:
    """Return the name of the component, used to name loggers for the resource."""
    if isinstance(obj, CustomObject):
        return obj.component_name()
    if isinstance(obj, UnstructuredObject):
        return obj.kind.lower()
    raise TypeMismatchError(_object_name(obj))


def to_unstructured(obj: Any) -> UnstructuredObject:
    """Return the resource in its unstructured form.

    An unstructured object is returned as is, a typed object is converted to a
    new document.
    """
    if isinstance(obj, UnstructuredObject):
        return obj
    if isinstance(obj, CustomObject):
        _LOGGER.debug("Converting %s to unstructured", obj.resource_id)
        return UnstructuredObject(obj.to_unstructured())
    raise TypeMismatchError(_object_name(obj))
