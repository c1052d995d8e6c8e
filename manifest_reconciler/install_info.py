"""Install context passed to an installer for a single reconciliation pass.

An `InstallInfo` is built fresh on every pass from the resource being
reconciled. It is never cached or shared between passes.
"""

from collections.abc import Awaitable, Callable, Mapping
import copy
from dataclasses import dataclass
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, TYPE_CHECKING

from . import accessor, strvals
from .exceptions import BuildError
from .manifest import BaseCustomObject, InstallItem, NamedResource, UnstructuredObject

if TYPE_CHECKING:
    from .client import ResourceClient

__all__ = [
    "ChartInfo",
    "RemoteInfo",
    "ResourceInfo",
    "InstallInfo",
    "ReadyCheck",
    "build_install_info",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ChartInfo:
    """The chart to install and how to install it."""

    chart_path: str
    """The path or reference of the chart."""

    release_name: str
    """The release name to install the chart as."""

    flags: Mapping[str, Any]
    """Parsed installer flags."""

    set_values: Mapping[str, Any]
    """Parsed chart value overrides."""


@dataclass(frozen=True, kw_only=True)
class RemoteInfo:
    """Access to the target cluster."""

    client: "ResourceClient"
    """Shared client for the cluster holding the managed resources."""

    kubeconfig: Path | None = None
    """Kubeconfig of the target cluster."""

    kube_context: str | None = None
    """Context within the kubeconfig of the target cluster."""


@dataclass(frozen=True, kw_only=True)
class ResourceInfo:
    """The resource that requested the install."""

    resource_id: NamedResource
    """Identity of the resource."""

    base_resource: UnstructuredObject
    """A private unstructured copy of the resource for custom checks."""


ReadyCheck = Callable[[UnstructuredObject, RemoteInfo], Awaitable[bool]]
"""Decides from the resource and the target cluster if an install is ready."""


async def default_ready_check(
    base_resource: UnstructuredObject, remote: RemoteInfo
) -> bool:
    """Readiness check used when none is configured: always ready."""
    return True


@dataclass(frozen=True, kw_only=True)
class InstallInfo:
    """Everything an installer needs for one install or uninstall."""

    chart: ChartInfo
    remote: RemoteInfo
    resource: ResourceInfo
    check_fn: ReadyCheck = default_ready_check
    check_ready_states: bool = True

    @property
    def install_item(self) -> InstallItem:
        """Descriptor recorded in the resource status."""
        return InstallItem(
            chart_path=self.chart.chart_path,
            release_name=self.chart.release_name,
        )


def _freeze(values: dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(values)


def build_install_info(
    obj: BaseCustomObject,
    chart_path: str,
    release_name: str,
    *,
    remote: RemoteInfo,
    chart_flags: str = "",
    set_flags: str = "",
    check_fn: ReadyCheck | None = None,
    check_ready_states: bool = True,
) -> InstallInfo:
    """Assemble the install context for a resource.

    Raises a `BuildError` when the chart reference or flags are malformed and
    a `TypeMismatchError` for an unsupported resource representation.
    """
    base_resource = accessor.to_unstructured(obj)
    if not chart_path:
        raise BuildError(f"Resource {base_resource.resource_id} missing spec.chartPath")
    if not release_name:
        raise BuildError(
            f"Resource {base_resource.resource_id} missing spec.releaseName"
        )
    try:
        flags = strvals.parse(chart_flags)
        set_values = strvals.parse(set_flags)
    except BuildError as err:
        raise BuildError(
            f"Resource {base_resource.resource_id} has invalid flags: {err}"
        ) from err

    _LOGGER.debug(
        "Prepared install of %s as %s for %s",
        chart_path,
        release_name,
        base_resource.resource_id,
    )
    return InstallInfo(
        chart=ChartInfo(
            chart_path=chart_path,
            release_name=release_name,
            flags=_freeze(flags),
            set_values=_freeze(set_values),
        ),
        remote=remote,
        resource=ResourceInfo(
            resource_id=base_resource.resource_id,
            base_resource=UnstructuredObject(copy.deepcopy(base_resource.object)),
        ),
        check_fn=check_fn or default_ready_check,
        check_ready_states=check_ready_states,
    )
