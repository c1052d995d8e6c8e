"""Tests for the in-memory resource client."""

from typing import Any

import pytest

from manifest_reconciler.client import InMemoryClient
from manifest_reconciler.exceptions import ConflictError, ObjectNotFoundError
from manifest_reconciler.manifest import (
    CustomObjectStatus,
    NamedResource,
    ObjectMeta,
    State,
    UnstructuredObject,
)

from conftest import SAMPLE_ID, Sample

PROTOTYPE = UnstructuredObject({"kind": "Sample"})
TYPED_PROTOTYPE = Sample(metadata=ObjectMeta(name=""))


async def test_create_and_get(client: InMemoryClient, sample_doc: dict[str, Any]) -> None:
    """Test a created object can be read in either representation."""
    obj = UnstructuredObject(sample_doc)
    client.create(obj)
    assert obj.resource_version == "1"

    unstructured = await client.get(SAMPLE_ID, PROTOTYPE)
    assert isinstance(unstructured, UnstructuredObject)
    assert unstructured.object["metadata"]["generation"] == 1
    assert unstructured.resource_version == "1"

    typed = await client.get(SAMPLE_ID, TYPED_PROTOTYPE)
    assert isinstance(typed, Sample)
    assert typed.spec.release_name == "nginx-release"
    assert typed.resource_version == "1"


async def test_get_returns_copies(client: InMemoryClient, sample_doc: dict[str, Any]) -> None:
    """Test mutating a read object does not change the stored object."""
    client.create(UnstructuredObject(sample_doc))
    obj = await client.get(SAMPLE_ID, PROTOTYPE)
    obj.labels = {"changed": "true"}
    again = await client.get(SAMPLE_ID, PROTOTYPE)
    assert again.labels == {"app": "nginx"}


async def test_get_not_found(client: InMemoryClient) -> None:
    """Test reading a missing object."""
    with pytest.raises(ObjectNotFoundError):
        await client.get(NamedResource("Sample", "default", "missing"), PROTOTYPE)


def test_create_duplicate(client: InMemoryClient, sample_doc: dict[str, Any]) -> None:
    """Test creating an object twice."""
    client.create(UnstructuredObject(sample_doc))
    with pytest.raises(ValueError, match="already exists"):
        client.create(UnstructuredObject(sample_doc))


async def test_update_does_not_write_status(
    client: InMemoryClient, sample_doc: dict[str, Any]
) -> None:
    """Test update persists metadata but ignores the status."""
    client.create(UnstructuredObject(sample_doc))
    obj = await client.get(SAMPLE_ID, TYPED_PROTOTYPE)
    assert isinstance(obj, Sample)
    obj.finalizers = ["deletion-finalizer"]
    obj.status.state = State.READY
    await client.update(obj)
    assert obj.resource_version == "2"

    stored = await client.get(SAMPLE_ID, TYPED_PROTOTYPE)
    assert isinstance(stored, Sample)
    assert stored.finalizers == ["deletion-finalizer"]
    assert stored.status.state == State.EMPTY
    assert stored.metadata.generation == 1


async def test_update_spec_bumps_generation(
    client: InMemoryClient, sample_doc: dict[str, Any]
) -> None:
    """Test a spec change increments the generation."""
    client.create(UnstructuredObject(sample_doc))
    obj = await client.get(SAMPLE_ID, PROTOTYPE)
    assert isinstance(obj, UnstructuredObject)
    obj.object["spec"]["releaseName"] = "other"
    await client.update(obj)
    stored = await client.get(SAMPLE_ID, PROTOTYPE)
    assert isinstance(stored, UnstructuredObject)
    assert stored.object["metadata"]["generation"] == 2


async def test_update_status_does_not_write_metadata(
    client: InMemoryClient, sample_doc: dict[str, Any]
) -> None:
    """Test update_status persists only the status."""
    client.create(UnstructuredObject(sample_doc))
    obj = await client.get(SAMPLE_ID, TYPED_PROTOTYPE)
    assert isinstance(obj, Sample)
    obj.labels = {"changed": "true"}
    obj.status = CustomObjectStatus(state=State.PROCESSING)
    await client.update_status(obj)

    stored = await client.get(SAMPLE_ID, TYPED_PROTOTYPE)
    assert isinstance(stored, Sample)
    assert stored.status.state == State.PROCESSING
    assert stored.labels == {"app": "nginx"}


async def test_stale_write_conflicts(
    client: InMemoryClient, sample_doc: dict[str, Any]
) -> None:
    """Test a write based on an old resource version is rejected."""
    client.create(UnstructuredObject(sample_doc))
    first = await client.get(SAMPLE_ID, PROTOTYPE)
    second = await client.get(SAMPLE_ID, PROTOTYPE)

    first.finalizers = ["a"]
    await client.update(first)

    second.finalizers = ["b"]
    with pytest.raises(ConflictError, match="has been modified"):
        await client.update(second)
    with pytest.raises(ConflictError):
        await client.update_status(second)

    stored = await client.get(SAMPLE_ID, PROTOTYPE)
    assert stored.finalizers == ["a"]


async def test_delete_without_finalizers(
    client: InMemoryClient, sample_doc: dict[str, Any]
) -> None:
    """Test deleting an object without finalizers removes it."""
    client.create(UnstructuredObject(sample_doc))
    client.delete(SAMPLE_ID)
    assert not client.exists(SAMPLE_ID)
    with pytest.raises(ObjectNotFoundError):
        client.delete(SAMPLE_ID)


async def test_delete_waits_for_finalizers(
    client: InMemoryClient, sample_doc: dict[str, Any]
) -> None:
    """Test an object is removed once its last finalizer is cleared."""
    sample_doc["metadata"]["finalizers"] = ["deletion-finalizer"]
    client.create(UnstructuredObject(sample_doc))
    client.delete(SAMPLE_ID)
    assert client.exists(SAMPLE_ID)

    obj = await client.get(SAMPLE_ID, TYPED_PROTOTYPE)
    assert obj.deletion_requested

    obj.finalizers = []
    await client.update(obj)
    assert not client.exists(SAMPLE_ID)


async def test_update_cannot_set_deletion_timestamp(
    client: InMemoryClient, sample_doc: dict[str, Any]
) -> None:
    """Test deletion intent is only set through delete."""
    client.create(UnstructuredObject(sample_doc))
    obj = await client.get(SAMPLE_ID, PROTOTYPE)
    assert isinstance(obj, UnstructuredObject)
    obj.object["metadata"]["deletionTimestamp"] = "2024-05-01T12:00:00Z"
    await client.update(obj)
    stored = await client.get(SAMPLE_ID, PROTOTYPE)
    assert not stored.deletion_requested

