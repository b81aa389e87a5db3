"""Pure state transitions for the status reconciler.

Every function takes the current :class:`ReconcilerState` plus one input (a
poll outcome, a user intent, a device binding) and returns a
:class:`Transition` holding the next state and any side effects the driver
must perform. Nothing here touches the network, the clock or a lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal

from solaris.device.client import DeviceStatus
from solaris.storage.models import DeviceRecord

OperationMode = Literal["automatic", "manual", "scheduled"]
LightName = Literal["foyer", "porch"]
FieldName = Literal["mode", "foyer", "porch"]
Effect = Literal["refresh"]

REFRESH: Effect = "refresh"


@dataclass(frozen=True)
class LiveStatus:
    connected: bool = False
    mode: str = "automatic"
    foyer_light: bool = False
    porch_light: bool = False


@dataclass(frozen=True)
class CachedStatus:
    last_activated: str | None = None
    battery_level: int | None = None


@dataclass(frozen=True)
class PollTicket:
    epoch: int
    revision: int
    endpoint: str


@dataclass(frozen=True)
class ReconcilerState:
    device: DeviceRecord | None = None
    epoch: int = 0
    revision: int = 0
    live: LiveStatus = field(default_factory=LiveStatus)
    cached: CachedStatus = field(default_factory=CachedStatus)
    observed: bool = False
    last_poll_at: str | None = None
    last_warning: str | None = None
    pending: frozenset[str] = frozenset()

    @property
    def stale(self) -> bool:
        return self.observed and not self.live.connected


@dataclass(frozen=True)
class Transition:
    state: ReconcilerState
    applied: bool = True
    effects: tuple[Effect, ...] = ()


def _field_attr(name: str) -> str:
    if name == "mode":
        return "mode"
    if name in {"foyer", "porch"}:
        return f"{name}_light"
    raise ValueError(f"Unknown field: {name}")


def read_field(state: ReconcilerState, name: str) -> object:
    return getattr(state.live, _field_attr(name))


def bind_device(state: ReconcilerState, device: DeviceRecord | None) -> Transition:
    return Transition(ReconcilerState(device=device, epoch=state.epoch + 1))


def update_device_record(state: ReconcilerState, device: DeviceRecord) -> Transition:
    current = state.device
    if current is None or current.id != device.id or current.endpoint_url != device.endpoint_url:
        return Transition(state, applied=False)
    return Transition(replace(state, device=device))


def begin_poll(state: ReconcilerState) -> PollTicket | None:
    if state.device is None or not state.device.endpoint_url:
        return None
    return PollTicket(epoch=state.epoch, revision=state.revision, endpoint=state.device.endpoint_url)


def is_current(state: ReconcilerState, ticket: PollTicket) -> bool:
    return ticket.epoch == state.epoch and ticket.revision == state.revision


def poll_unreachable(state: ReconcilerState, ticket: PollTicket, at_iso: str) -> Transition:
    if ticket.epoch != state.epoch:
        return Transition(state, applied=False)
    live = replace(state.live, connected=False)
    return Transition(replace(state, live=live, last_poll_at=at_iso))


def poll_transient_failure(state: ReconcilerState, ticket: PollTicket, reason: str, at_iso: str) -> Transition:
    if ticket.epoch != state.epoch:
        return Transition(state, applied=False)
    return Transition(replace(state, last_warning=reason, last_poll_at=at_iso))


def poll_succeeded(state: ReconcilerState, ticket: PollTicket, status: DeviceStatus, at_iso: str) -> Transition:
    if not is_current(state, ticket):
        return Transition(state, applied=False)
    # Fields with a command in flight keep their optimistic value until the command settles.
    live = LiveStatus(
        connected=True,
        mode=state.live.mode if "mode" in state.pending else status.mode,
        foyer_light=state.live.foyer_light if "foyer" in state.pending else status.foyer,
        porch_light=state.live.porch_light if "porch" in state.pending else status.porch,
    )
    cached = state.cached
    if status.battery is not None:
        cached = replace(cached, battery_level=status.battery)
    return Transition(
        replace(
            state,
            live=live,
            cached=cached,
            observed=True,
            last_poll_at=at_iso,
            last_warning=None,
        )
    )


def optimistic_write(state: ReconcilerState, name: str, value: object) -> Transition:
    live = replace(state.live, **{_field_attr(name): value})
    return Transition(
        replace(
            state,
            live=live,
            revision=state.revision + 1,
            pending=state.pending | {name},
        )
    )


def command_acknowledged(state: ReconcilerState, name: str, epoch: int, at_iso: str) -> Transition:
    if epoch != state.epoch:
        return Transition(state, applied=False)
    cached = state.cached
    if name in {"foyer", "porch"}:
        cached = replace(cached, last_activated=at_iso)
    return Transition(
        replace(state, cached=cached, revision=state.revision + 1, pending=state.pending - {name}),
        effects=(REFRESH,),
    )


def rollback(state: ReconcilerState, name: str, previous: object, epoch: int) -> Transition:
    if epoch != state.epoch:
        return Transition(state, applied=False)
    live = replace(state.live, **{_field_attr(name): previous})
    return Transition(
        replace(
            state,
            live=live,
            revision=state.revision + 1,
            pending=state.pending - {name},
        )
    )
