"""Tests for deletion finalizer handling."""

from typing import Any

import pytest

from manifest_reconciler.finalizer import (
    DELETION_FINALIZER,
    add_deletion_finalizer,
    has_deletion_finalizer,
    remove_deletion_finalizer,
)
from manifest_reconciler.manifest import BaseCustomObject, UnstructuredObject

from conftest import Sample


@pytest.fixture(name="obj", params=["typed", "unstructured"])
def obj_fixture(
    request: pytest.FixtureRequest, sample_doc: dict[str, Any]
) -> BaseCustomObject:
    if request.param == "typed":
        return Sample.from_unstructured(sample_doc)
    return UnstructuredObject(sample_doc)


def test_add_and_remove(obj: BaseCustomObject) -> None:
    """Test the finalizer is added and removed once."""
    assert not has_deletion_finalizer(obj)

    assert add_deletion_finalizer(obj)
    assert has_deletion_finalizer(obj)
    assert obj.finalizers == [DELETION_FINALIZER]
    assert not add_deletion_finalizer(obj)
    assert obj.finalizers == [DELETION_FINALIZER]

    assert remove_deletion_finalizer(obj)
    assert not has_deletion_finalizer(obj)
    assert not remove_deletion_finalizer(obj)


def test_other_finalizers_kept(obj: BaseCustomObject) -> None:
    """Test finalizers owned by others are untouched."""
    obj.finalizers = ["other.io/protect"]
    assert add_deletion_finalizer(obj)
    assert obj.finalizers == ["other.io/protect", DELETION_FINALIZER]
    assert remove_deletion_finalizer(obj)
    assert obj.finalizers == ["other.io/protect"]


def test_custom_finalizer_name(obj: BaseCustomObject) -> None:
    """Test a configured finalizer name."""
    assert add_deletion_finalizer(obj, "custom-deletion-finalizer")
    assert has_deletion_finalizer(obj, "custom-deletion-finalizer")
    assert not has_deletion_finalizer(obj)
