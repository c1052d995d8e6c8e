"""Representation of the custom resources managed by the reconciler.

A managed resource declares a chart to install on a target cluster. The same
logical resource may be handled in two shapes:

- A `CustomObject` subclass, a strongly typed dataclass with native field
  access, serialized with mashumaro.
- An `UnstructuredObject`, a schema-less wrapper around the raw kubernetes
  document, addressed by path (e.g. `spec`, `status`, `metadata.labels`).

Both shapes expose the same metadata accessors so that finalizers, labels and
deletion intent can be handled without knowing which one is in use.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import datetime
from enum import StrEnum
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import TypeMismatchError

__all__ = [
    "NamedResource",
    "State",
    "InstallItem",
    "Condition",
    "CustomObjectSpec",
    "CustomObjectStatus",
    "ObjectMeta",
    "CustomObject",
    "UnstructuredObject",
    "BaseCustomObject",
]


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all serializable resource parts."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


class State(StrEnum):
    """Lifecycle state of a managed resource."""

    EMPTY = ""
    PROCESSING = "Processing"
    READY = "Ready"
    ERROR = "Error"
    DELETING = "Deleting"


@dataclass
class InstallItem(BaseManifest):
    """Descriptor of the chart installed for a resource."""

    chart_path: str = field(metadata=field_options(alias="chartPath"), default="")
    """The path or reference of the chart."""

    release_name: str = field(metadata=field_options(alias="releaseName"), default="")
    """The name of the release installed from the chart."""


@dataclass
class Condition(BaseManifest):
    """A single entry of the state transition history."""

    type: State
    """The state that was entered."""

    status: str = "True"
    """Kubernetes style condition status."""

    reason: str = ""
    """Short machine readable reason for the transition."""

    message: str = ""
    """Human readable detail, e.g. the installer error."""

    last_transition_time: datetime.datetime | None = field(
        metadata=field_options(alias="lastTransitionTime"), default=None
    )
    """When the transition was recorded."""

    install_info: InstallItem | None = field(
        metadata=field_options(alias="installInfo"), default=None
    )
    """Snapshot of the install descriptor at transition time."""


@dataclass
class CustomObjectSpec(BaseManifest):
    """Desired state declared by the resource owner."""

    chart_path: str = field(metadata=field_options(alias="chartPath"), default="")
    """The path or reference of the chart to install."""

    release_name: str = field(metadata=field_options(alias="releaseName"), default="")
    """The release name to install the chart as."""

    chart_flags: str = field(metadata=field_options(alias="chartFlags"), default="")
    """Comma separated installer flags, e.g. `Namespace=foo,CreateNamespace=true`."""

    set_flags: str = field(metadata=field_options(alias="setFlags"), default="")
    """Comma separated chart value overrides, e.g. `replicas=2,image.tag=v1`."""


@dataclass
class CustomObjectStatus(BaseManifest):
    """Observed state, written only by the reconciler."""

    state: State = State.EMPTY
    """The current lifecycle state."""

    conditions: list[Condition] = field(default_factory=list)
    """Ordered transition history, oldest first."""

    install_info: InstallItem | None = field(
        metadata=field_options(alias="installInfo"), default=None
    )
    """The last applied install descriptor."""


@dataclass
class ObjectMeta(BaseManifest):
    """Kubernetes object metadata used by the reconciler."""

    name: str
    namespace: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: datetime.datetime | None = field(
        metadata=field_options(alias="deletionTimestamp"), default=None
    )
    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    generation: int | None = None


@dataclass
class CustomObject(BaseManifest, ABC):
    """Base class for strongly typed custom resources.

    Subclasses set the `kind` and `api_version` class variables and provide the
    component name used to identify the controller for the resource.
    """

    kind: ClassVar[str]
    """The kind of the object."""

    api_version: ClassVar[str]
    """The apiVersion of the object."""

    metadata: ObjectMeta
    spec: CustomObjectSpec = field(default_factory=CustomObjectSpec)
    status: CustomObjectStatus = field(default_factory=CustomObjectStatus)

    @abstractmethod
    def component_name(self) -> str:
        """Return the name of the component managed by this resource."""

    @classmethod
    def from_unstructured(cls, doc: dict[str, Any]) -> "CustomObject":
        """Parse a typed object from a raw kubernetes document.

        Raises a `TypeMismatchError` when the document does not match the
        schema of the typed object.
        """
        try:
            return cls.from_dict(doc)
        except (MissingField, InvalidFieldValue, ValueError) as err:
            raise TypeMismatchError(
                f"{cls.kind} (unable to parse typed object: {err})"
            ) from err

    def to_unstructured(self) -> dict[str, Any]:
        """Return the raw kubernetes document for this object."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            **self.to_dict(),
        }

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return dict(self.metadata.labels)

    @labels.setter
    def labels(self, value: dict[str, str]) -> None:
        self.metadata.labels = dict(value)

    @property
    def finalizers(self) -> list[str]:
        return list(self.metadata.finalizers)

    @finalizers.setter
    def finalizers(self, value: list[str]) -> None:
        self.metadata.finalizers = list(value)

    @property
    def deletion_timestamp(self) -> datetime.datetime | None:
        return self.metadata.deletion_timestamp

    @property
    def resource_version(self) -> str | None:
        return self.metadata.resource_version

    @resource_version.setter
    def resource_version(self, value: str | None) -> None:
        self.metadata.resource_version = value

    @property
    def deletion_requested(self) -> bool:
        """True once deletion of the resource has been requested."""
        return self.metadata.deletion_timestamp is not None

    @property
    def resource_id(self) -> NamedResource:
        return NamedResource(kind=self.kind, namespace=self.namespace, name=self.name)


@dataclass
class UnstructuredObject:
    """A schema-less kubernetes object backed by its raw document."""

    object: dict[str, Any]

    def _metadata(self) -> dict[str, Any]:
        return self.object.setdefault("metadata", {})

    @property
    def kind(self) -> str:
        return str(self.object.get("kind", ""))

    @property
    def api_version(self) -> str:
        return str(self.object.get("apiVersion", ""))

    @property
    def name(self) -> str:
        return str(self.object.get("metadata", {}).get("name", ""))

    @property
    def namespace(self) -> str | None:
        return self.object.get("metadata", {}).get("namespace")

    @property
    def labels(self) -> dict[str, str]:
        return dict(self.object.get("metadata", {}).get("labels") or {})

    @labels.setter
    def labels(self, value: dict[str, str]) -> None:
        self._metadata()["labels"] = dict(value)

    @property
    def finalizers(self) -> list[str]:
        return list(self.object.get("metadata", {}).get("finalizers") or [])

    @finalizers.setter
    def finalizers(self, value: list[str]) -> None:
        self._metadata()["finalizers"] = list(value)

    @property
    def deletion_timestamp(self) -> datetime.datetime | None:
        value = self.object.get("metadata", {}).get("deletionTimestamp")
        if value is None or isinstance(value, datetime.datetime):
            return value
        try:
            return datetime.datetime.fromisoformat(value)
        except (TypeError, ValueError) as err:
            raise TypeMismatchError(
                f"{self.resource_id} (invalid metadata.deletionTimestamp {value!r})"
            ) from err

    @property
    def resource_version(self) -> str | None:
        return self.object.get("metadata", {}).get("resourceVersion")

    @resource_version.setter
    def resource_version(self, value: str | None) -> None:
        self._metadata()["resourceVersion"] = value

    @property
    def deletion_requested(self) -> bool:
        """True once deletion of the resource has been requested."""
        return self.deletion_timestamp is not None

    @property
    def resource_id(self) -> NamedResource:
        return NamedResource(kind=self.kind, namespace=self.namespace, name=self.name)


BaseCustomObject = CustomObject | UnstructuredObject
"""Either representation of a managed resource."""
