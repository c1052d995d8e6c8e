"""Tests for manifest library."""

import datetime
from typing import Any

import pytest

from manifest_reconciler.exceptions import TypeMismatchError
from manifest_reconciler.manifest import (
    Condition,
    CustomObjectStatus,
    InstallItem,
    NamedResource,
    ObjectMeta,
    State,
    UnstructuredObject,
)

from conftest import SAMPLE_ID, Sample


def test_parse_typed_object(sample_doc: dict[str, Any]) -> None:
    """Test parsing a typed object from a raw document."""
    obj = Sample.from_unstructured(sample_doc)
    assert obj.name == "nginx"
    assert obj.namespace == "default"
    assert obj.labels == {"app": "nginx"}
    assert obj.spec.chart_path == "./charts/nginx"
    assert obj.spec.release_name == "nginx-release"
    assert obj.spec.chart_flags == "Namespace=nginx,CreateNamespace=true"
    assert obj.spec.set_flags == "replicaCount=2,image.tag=1.25"
    assert obj.status.state == State.EMPTY
    assert obj.resource_id == SAMPLE_ID
    assert not obj.deletion_requested


def test_typed_to_unstructured() -> None:
    """Test the raw document uses kubernetes field names."""
    obj = Sample(metadata=ObjectMeta(name="nginx", namespace="default"))
    obj.spec.chart_path = "./charts/nginx"
    obj.status = CustomObjectStatus(
        state=State.READY,
        conditions=[
            Condition(
                type=State.READY,
                reason="InstallSucceeded",
                last_transition_time=datetime.datetime(
                    2024, 5, 1, tzinfo=datetime.timezone.utc
                ),
                install_info=InstallItem(chart_path="./charts/nginx"),
            )
        ],
    )
    assert obj.to_unstructured() == {
        "apiVersion": "operator.kyma-project.io/v1alpha1",
        "kind": "Sample",
        "metadata": {
            "name": "nginx",
            "namespace": "default",
            "labels": {},
            "finalizers": [],
        },
        "spec": {
            "chartPath": "./charts/nginx",
            "releaseName": "",
            "chartFlags": "",
            "setFlags": "",
        },
        "status": {
            "state": "Ready",
            "conditions": [
                {
                    "type": "Ready",
                    "status": "True",
                    "reason": "InstallSucceeded",
                    "message": "",
                    "lastTransitionTime": "2024-05-01T00:00:00+00:00",
                    "installInfo": {
                        "chartPath": "./charts/nginx",
                        "releaseName": "",
                    },
                }
            ],
        },
    }


def test_unstructured_metadata(sample_doc: dict[str, Any]) -> None:
    """Test path based metadata access on an unstructured object."""
    obj = UnstructuredObject(sample_doc)
    assert obj.kind == "Sample"
    assert obj.api_version == "operator.kyma-project.io/v1alpha1"
    assert obj.resource_id == SAMPLE_ID
    assert obj.finalizers == []
    assert obj.resource_version is None

    obj.finalizers = ["a"]
    obj.labels = {"team": "x"}
    obj.resource_version = "7"
    assert sample_doc["metadata"]["finalizers"] == ["a"]
    assert sample_doc["metadata"]["labels"] == {"team": "x"}
    assert sample_doc["metadata"]["resourceVersion"] == "7"


def test_unstructured_deletion_timestamp(sample_doc: dict[str, Any]) -> None:
    """Test deletion intent is derived from the deletion timestamp."""
    obj = UnstructuredObject(sample_doc)
    assert not obj.deletion_requested
    assert obj.deletion_timestamp is None

    sample_doc["metadata"]["deletionTimestamp"] = "2024-05-01T12:00:00Z"
    assert obj.deletion_requested
    assert obj.deletion_timestamp == datetime.datetime(
        2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc
    )


def test_typed_deletion_timestamp(sample_doc: dict[str, Any]) -> None:
    """Test parsing the deletion timestamp of a typed object."""
    sample_doc["metadata"]["deletionTimestamp"] = "2024-05-01T12:00:00+00:00"
    obj = Sample.from_unstructured(sample_doc)
    assert obj.deletion_requested
    assert obj.deletion_timestamp == datetime.datetime(
        2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc
    )


def test_named_resource() -> None:
    """Test string representation of a resource identifier."""
    assert str(SAMPLE_ID) == "Sample/default/nginx"
    assert SAMPLE_ID.namespaced_name == "default/nginx"
    assert NamedResource("Sample", None, "nginx").namespaced_name == "nginx"


def test_typed_invalid_state(sample_doc: dict[str, Any]) -> None:
    """Test a document that does not match the typed schema is rejected."""
    sample_doc["status"] = {"state": "Bogus"}
    with pytest.raises(TypeMismatchError, match="unable to parse typed object"):
        Sample.from_unstructured(sample_doc)


def test_unstructured_invalid_deletion_timestamp(sample_doc: dict[str, Any]) -> None:
    """Test an unparsable deletion timestamp is rejected."""
    sample_doc["metadata"]["deletionTimestamp"] = "yesterday"
    obj = UnstructuredObject(sample_doc)
    with pytest.raises(TypeMismatchError, match="invalid metadata.deletionTimestamp"):
        obj.deletion_timestamp
    with pytest.raises(TypeMismatchError):
        obj.deletion_requested
