"""Declarative reconciliation of chart installing custom resources.

The `ManifestReconciler` is invoked by an external scheduler once per delivery
of a resource key. Each call is a single pass: read the resource, decide which
action its status calls for, perform it and commit the resulting status. The
reconciler holds no state between passes, so a pass may be repeated or run
concurrently for the same key. The persisted status is the only source of
truth and a stale commit is rejected by the client and retried by the
scheduler.

The state machine:

- Deletion requested and state is not Deleting: enter Deleting.
- Deletion finalizer missing: add it and end the pass.
- Empty: add configured resource labels, then enter Processing.
- Processing: install the chart. Ready when complete, Error on failure.
- Deleting: uninstall the chart, then remove the finalizer.
- Error: enter Processing to retry.
- Ready: run the drift check, re-enter Processing when drift is detected.

Installer failures never escape `reconcile`. They are recorded as an Error
condition on the resource and retried on the next pass.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import datetime
from enum import StrEnum
import logging

from . import accessor
from .client import ResourceClient
from .config import ReconcilerConfig
from .context import trace_context
from .exceptions import ConflictError, ObjectNotFoundError
from .finalizer import (
    add_deletion_finalizer,
    has_deletion_finalizer,
    remove_deletion_finalizer,
)
from .install_info import InstallInfo, ReadyCheck, RemoteInfo, build_install_info
from .installer import Installer
from .manifest import (
    BaseCustomObject,
    Condition,
    CustomObjectStatus,
    InstallItem,
    NamedResource,
    State,
)

__all__ = [
    "Action",
    "Transition",
    "ReconcileResult",
    "ManifestReconciler",
    "dispatch",
]

_LOGGER = logging.getLogger(__name__)


DriftCheck = Callable[[BaseCustomObject], Awaitable[bool]]
"""Returns True when the installed release is consistent with the resource."""


class Action(StrEnum):
    """The action taken by a reconciliation pass."""

    MARK_DELETING = "mark_deleting"
    ADD_FINALIZER = "add_finalizer"
    INITIALIZE = "initialize"
    INSTALL = "install"
    UNINSTALL = "uninstall"
    RETRY = "retry"
    CHECK_READY = "check_ready"


@dataclass(frozen=True)
class Transition:
    """An action and the state the resource is in when the action succeeds."""

    action: Action
    next_state: State


_STATE_TRANSITIONS: dict[State, Transition] = {
    State.EMPTY: Transition(Action.INITIALIZE, State.PROCESSING),
    State.PROCESSING: Transition(Action.INSTALL, State.READY),
    State.DELETING: Transition(Action.UNINSTALL, State.DELETING),
    State.ERROR: Transition(Action.RETRY, State.PROCESSING),
    State.READY: Transition(Action.CHECK_READY, State.READY),
}


def dispatch(
    state: State, deletion_requested: bool, finalizer_present: bool
) -> Transition:
    """Decide the action for a pass.

    Deletion intent and the finalizer are checked before the current state so
    that deletion preempts any install in progress.
    """
    if deletion_requested and state != State.DELETING:
        return Transition(Action.MARK_DELETING, State.DELETING)
    if not finalizer_present and not deletion_requested:
        return Transition(Action.ADD_FINALIZER, state)
    return _STATE_TRANSITIONS[state]


@dataclass
class ReconcileResult:
    """Result from a reconcile() call."""

    requeue: bool = False
    """Deliver the key again as soon as possible."""

    requeue_after: float | None = None
    """Deliver the key again after this many seconds."""


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)


class ManifestReconciler:
    """Reconciler driving managed resources through their lifecycle."""

    def __init__(
        self,
        client: ResourceClient,
        installer: Installer,
        prototype: BaseCustomObject,
        config: ReconcilerConfig | None = None,
        ready_check: ReadyCheck | None = None,
        drift_check: DriftCheck | None = None,
        clock: Callable[[], datetime.datetime] = _now,
    ) -> None:
        """Initialize ManifestReconciler.

        Args:
            client: Shared client for reading and writing resources.
            installer: Shared installer used for every resource.
            prototype: An object of the representation resources are read as,
                either a typed object or an unstructured object.
            config: The configuration for the reconciler.
            ready_check: Readiness check passed to the installer.
            drift_check: Consistency check run for Ready resources.
            clock: Source of condition timestamps.
        """
        self._client = client
        self._installer = installer
        self._prototype = prototype
        self._config = config or ReconcilerConfig()
        self._ready_check = ready_check
        self._drift_check = drift_check
        self._clock = clock
        self.component_name = accessor.component_name(prototype)
        self._logger = _LOGGER.getChild(self.component_name)
        self._remote = RemoteInfo(
            client=client,
            kubeconfig=self._config.kubeconfig,
            kube_context=self._config.kube_context,
        )
        self._handlers: dict[
            Action,
            Callable[
                [BaseCustomObject, CustomObjectStatus], Awaitable[ReconcileResult]
            ],
        ] = {
            Action.MARK_DELETING: self._handle_deletion_requested,
            Action.ADD_FINALIZER: self._handle_missing_finalizer,
            Action.INITIALIZE: self.handle_initial_state,
            Action.INSTALL: self.handle_processing_state,
            Action.UNINSTALL: self.handle_deleting_state,
            Action.RETRY: self.handle_error_state,
            Action.CHECK_READY: self.handle_ready_state,
        }

    async def reconcile(self, resource_id: NamedResource) -> ReconcileResult:
        """Run a single reconciliation pass for the resource.

        Returns an empty result when the resource is stable or gone. Raises
        `TypeMismatchError` or `BuildError` for failures that won't resolve by
        retrying the same input.
        """
        with trace_context(f"reconcile {resource_id}"):
            try:
                obj = await self._client.get(resource_id, self._prototype)
                return await self._reconcile(obj)
            except ObjectNotFoundError:
                self._logger.info("%s got deleted!", resource_id)
                return ReconcileResult()
            except ConflictError as err:
                self._logger.info(
                    "Stale write for %s, requeueing: %s", resource_id, err
                )
                return ReconcileResult(requeue=True)

    async def _reconcile(self, obj: BaseCustomObject) -> ReconcileResult:
        status = accessor.get_status(obj)
        transition = dispatch(
            status.state,
            obj.deletion_requested,
            has_deletion_finalizer(obj, self._config.finalizer),
        )
        self._logger.debug(
            "Resource %s in state '%s' dispatched to %s",
            obj.resource_id,
            status.state,
            transition.action,
        )
        return await self._handlers[transition.action](obj, status)

    async def _handle_deletion_requested(
        self, obj: BaseCustomObject, status: CustomObjectStatus
    ) -> ReconcileResult:
        await self._commit(
            obj,
            status,
            State.DELETING,
            reason="DeletionRequested",
            message="Resource deletion was requested",
        )
        return ReconcileResult()

    async def _handle_missing_finalizer(
        self, obj: BaseCustomObject, status: CustomObjectStatus
    ) -> ReconcileResult:
        if add_deletion_finalizer(obj, self._config.finalizer):
            await self._client.update(obj)
        return ReconcileResult()

    async def handle_initial_state(
        self, obj: BaseCustomObject, status: CustomObjectStatus
    ) -> ReconcileResult:
        """Label a new resource, then move it to Processing."""
        labels = obj.labels
        missing = {
            key: value
            for key, value in self._config.resource_labels.items()
            if labels.get(key) != value
        }
        if missing:
            self._logger.debug("Adding labels %s to %s", missing, obj.resource_id)
            obj.labels = {**labels, **missing}
            await self._client.update(obj)
            return ReconcileResult()

        await self._commit(
            obj,
            status,
            State.PROCESSING,
            reason="Initialized",
            message="Resource accepted for processing",
        )
        return ReconcileResult()

    async def handle_processing_state(
        self, obj: BaseCustomObject, status: CustomObjectStatus
    ) -> ReconcileResult:
        """Install the chart and record the outcome."""
        info = self._prepare_install_info(obj)
        try:
            with trace_context("install"):
                ready = await self._installer.install(info)
        except Exception as err:
            self._logger.warning(
                "Failed to install %s for %s: %s",
                info.chart.release_name,
                obj.resource_id,
                err,
            )
            await self._commit(
                obj,
                status,
                State.ERROR,
                reason="InstallFailed",
                message=f"Install failed: {type(err).__name__}: {err}",
                install_item=info.install_item,
            )
            return ReconcileResult()

        if not ready:
            self._logger.debug("Install of %s in progress", info.chart.release_name)
            return ReconcileResult(requeue_after=self._config.progress_requeue_after)

        status.install_info = info.install_item
        await self._commit(
            obj,
            status,
            State.READY,
            reason="InstallSucceeded",
            message=f"Release {info.chart.release_name} is installed",
            install_item=info.install_item,
        )
        return ReconcileResult()

    async def handle_deleting_state(
        self, obj: BaseCustomObject, status: CustomObjectStatus
    ) -> ReconcileResult:
        """Uninstall the chart, releasing the resource once it is removed."""
        info = self._prepare_install_info(obj)
        try:
            with trace_context("uninstall"):
                removed = await self._installer.uninstall(info)
        except Exception as err:
            self._logger.warning(
                "Failed to uninstall %s for %s: %s",
                info.chart.release_name,
                obj.resource_id,
                err,
            )
            await self._commit(
                obj,
                status,
                State.ERROR,
                reason="UninstallFailed",
                message=f"Uninstall failed: {type(err).__name__}: {err}",
                install_item=info.install_item,
            )
            return ReconcileResult()

        if not removed:
            self._logger.debug("Uninstall of %s in progress", info.chart.release_name)
            return ReconcileResult(requeue_after=self._config.progress_requeue_after)

        # Releasing without a deletion request would only re-add the finalizer
        if not obj.deletion_requested:
            self._logger.warning(
                "Release %s removed but deletion of %s was not requested",
                info.chart.release_name,
                obj.resource_id,
            )
            return ReconcileResult()
        if remove_deletion_finalizer(obj, self._config.finalizer):
            self._logger.info(
                "Release %s removed, releasing %s",
                info.chart.release_name,
                obj.resource_id,
            )
            await self._client.update(obj)
        return ReconcileResult()

    async def handle_error_state(
        self, obj: BaseCustomObject, status: CustomObjectStatus
    ) -> ReconcileResult:
        """Move a failed resource back to Processing to retry."""
        await self._commit(
            obj,
            status,
            State.PROCESSING,
            reason="Retry",
            message="Retrying after error",
        )
        return ReconcileResult()

    async def handle_ready_state(
        self, obj: BaseCustomObject, status: CustomObjectStatus
    ) -> ReconcileResult:
        """Check a ready resource for drift, without changes when consistent."""
        if self._drift_check is None:
            return ReconcileResult()
        try:
            consistent = await self._drift_check(obj)
        except Exception as err:
            self._logger.warning("Drift check failed for %s: %s", obj.resource_id, err)
            await self._commit(
                obj,
                status,
                State.ERROR,
                reason="DriftCheckFailed",
                message=f"Drift check failed: {type(err).__name__}: {err}",
            )
            return ReconcileResult()
        if consistent:
            return ReconcileResult()
        await self._commit(
            obj,
            status,
            State.PROCESSING,
            reason="DriftDetected",
            message="Installed release differs from the resource",
        )
        return ReconcileResult()

    def _prepare_install_info(self, obj: BaseCustomObject) -> InstallInfo:
        spec = accessor.get_spec(obj)
        return build_install_info(
            obj,
            spec.chart_path,
            spec.release_name,
            remote=self._remote,
            chart_flags=spec.chart_flags,
            set_flags=spec.set_flags,
            check_fn=self._ready_check,
            check_ready_states=self._config.check_ready_states,
        )

    async def _commit(
        self,
        obj: BaseCustomObject,
        status: CustomObjectStatus,
        state: State,
        reason: str,
        message: str,
        install_item: InstallItem | None = None,
    ) -> None:
        """Record a transition to `state` and persist the status."""
        self._logger.info(
            "Resource %s transition '%s' -> '%s' (%s)",
            obj.resource_id,
            status.state,
            state,
            reason,
        )
        status.state = state
        status.conditions.append(
            Condition(
                type=state,
                reason=reason,
                message=message,
                last_transition_time=self._clock(),
                install_info=install_item or status.install_info,
            )
        )
        if (excess := len(status.conditions) - self._config.max_conditions) > 0:
            del status.conditions[:excess]
        accessor.set_status(obj, status)
        await self._client.update_status(obj)
