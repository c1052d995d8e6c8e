"""Access to the cluster holding the managed resources.

The `ResourceClient` interface is the only way the reconciler reads and
persists resources. Writes use optimistic concurrency: an object carries the
`resourceVersion` it was read at, and a write based on a stale version is
rejected with a `ConflictError`.

`InMemoryClient` is a complete in-process implementation with kubernetes
semantics for finalizers and deletion, used for tests and local runs.
"""

from abc import ABC, abstractmethod
import copy
import datetime
import logging
from typing import Any

from .exceptions import ConflictError, ObjectNotFoundError, TypeMismatchError
from .manifest import BaseCustomObject, CustomObject, NamedResource, UnstructuredObject

__all__ = [
    "ResourceClient",
    "InMemoryClient",
]

_LOGGER = logging.getLogger(__name__)


class ResourceClient(ABC):
    """Abstract interface for reading and writing managed resources."""

    @abstractmethod
    async def get(
        self, resource_id: NamedResource, prototype: BaseCustomObject
    ) -> BaseCustomObject:
        """Return a fresh copy of the resource in the representation of `prototype`.

        Raises:
            ObjectNotFoundError: If the resource does not exist.
        """

    @abstractmethod
    async def update(self, obj: BaseCustomObject) -> None:
        """Persist the metadata and spec of the resource.

        The status of the resource is not written. On success the resource
        version of `obj` is updated in place.

        Raises:
            ConflictError: If `obj` was read at a stale resource version.
            ObjectNotFoundError: If the resource does not exist.
        """

    @abstractmethod
    async def update_status(self, obj: BaseCustomObject) -> None:
        """Persist the status of the resource.

        Raises:
            ConflictError: If `obj` was read at a stale resource version.
            ObjectNotFoundError: If the resource does not exist.
        """


def _to_doc(obj: BaseCustomObject) -> dict[str, Any]:
    if isinstance(obj, UnstructuredObject):
        return copy.deepcopy(obj.object)
    if isinstance(obj, CustomObject):
        return obj.to_unstructured()
    raise TypeMismatchError(type(obj).__name__)


def _from_doc(doc: dict[str, Any], prototype: BaseCustomObject) -> BaseCustomObject:
    if isinstance(prototype, UnstructuredObject):
        return UnstructuredObject(copy.deepcopy(doc))
    if isinstance(prototype, CustomObject):
        return prototype.from_unstructured(copy.deepcopy(doc))
    raise TypeMismatchError(type(prototype).__name__)


class InMemoryClient(ResourceClient):
    """In-memory implementation of the ResourceClient interface.

    Objects are stored as raw documents keyed by NamedResource, so the same
    resource may be read in either representation.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryClient."""
        self._objects: dict[NamedResource, dict[str, Any]] = {}
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _current(self, obj: BaseCustomObject) -> dict[str, Any]:
        resource_id = obj.resource_id
        if (current := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        actual = current["metadata"]["resourceVersion"]
        if obj.resource_version is not None and obj.resource_version != actual:
            raise ConflictError(str(resource_id), obj.resource_version, actual)
        return current

    def create(self, obj: BaseCustomObject) -> None:
        """Add a new resource, assigning its resource version."""
        resource_id = obj.resource_id
        if resource_id in self._objects:
            raise ValueError(f"Object {resource_id} already exists")
        doc = _to_doc(obj)
        metadata = doc.setdefault("metadata", {})
        metadata["resourceVersion"] = self._next_version()
        metadata.setdefault("generation", 1)
        _LOGGER.debug("Creating object %s", resource_id)
        self._objects[resource_id] = doc
        obj.resource_version = metadata["resourceVersion"]

    async def get(
        self, resource_id: NamedResource, prototype: BaseCustomObject
    ) -> BaseCustomObject:
        """Return a fresh copy of the resource in the representation of `prototype`."""
        if (doc := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        return _from_doc(doc, prototype)

    async def update(self, obj: BaseCustomObject) -> None:
        """Persist the metadata and spec of the resource."""
        current = self._current(obj)
        doc = _to_doc(obj)
        doc["status"] = current.get("status")
        if doc["status"] is None:
            del doc["status"]
        metadata = doc.setdefault("metadata", {})
        # Deletion intent may only be set through delete()
        if (deletion := current["metadata"].get("deletionTimestamp")) is not None:
            metadata["deletionTimestamp"] = deletion
        else:
            metadata.pop("deletionTimestamp", None)
        if doc.get("spec") != current.get("spec"):
            metadata["generation"] = current["metadata"].get("generation", 1) + 1
        else:
            metadata["generation"] = current["metadata"].get("generation", 1)
        self._write(obj, doc)

    async def update_status(self, obj: BaseCustomObject) -> None:
        """Persist the status of the resource."""
        current = self._current(obj)
        doc = copy.deepcopy(current)
        if (status := _to_doc(obj).get("status")) is not None:
            doc["status"] = status
        else:
            doc.pop("status", None)
        self._write(obj, doc)

    def delete(self, resource_id: NamedResource) -> None:
        """Request deletion of a resource.

        A resource with finalizers is only marked with a deletion timestamp and
        is removed once its last finalizer is cleared.
        """
        if (doc := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        metadata = doc["metadata"]
        if not metadata.get("finalizers"):
            self._remove(resource_id)
            return
        if metadata.get("deletionTimestamp") is None:
            metadata["deletionTimestamp"] = (
                datetime.datetime.now(datetime.timezone.utc)
                .replace(microsecond=0)
                .isoformat()
            )
            metadata["resourceVersion"] = self._next_version()

    def exists(self, resource_id: NamedResource) -> bool:
        """Return True if the resource is present."""
        return resource_id in self._objects

    def _write(self, obj: BaseCustomObject, doc: dict[str, Any]) -> None:
        resource_id = obj.resource_id
        metadata = doc["metadata"]
        if metadata.get("deletionTimestamp") is not None and not metadata.get(
            "finalizers"
        ):
            self._remove(resource_id)
            return
        metadata["resourceVersion"] = self._next_version()
        self._objects[resource_id] = doc
        obj.resource_version = metadata["resourceVersion"]

    def _remove(self, resource_id: NamedResource) -> None:
        _LOGGER.debug("Removing object %s", resource_id)
        del self._objects[resource_id]

