"""
app/domain/lifecycle.py

Shipment lifecycle transition table and guards.

The same table serves the automatic path (stage completion after scans) and
the command path (explicit transition requests). Guards see a snapshot of the
shipment plus fresh container counts and return a rejection code, or None
when the transition may proceed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from db.models.container import ContainerStatus
from db.models.shipment import ShipmentStatus


class TransitionRejection:
    INVALID_TRANSITION = "INVALID_TRANSITION"
    TRANSPORTER_NOT_ASSIGNED = "TRANSPORTER_NOT_ASSIGNED"
    NEXT_LEG_NOT_ASSIGNED = "NEXT_LEG_NOT_ASSIGNED"
    CONTAINERS_INCOMPLETE = "CONTAINERS_INCOMPLETE"
    STALE_STATUS = "STALE_STATUS"
    SHIPMENT_DELIVERED = "SHIPMENT_DELIVERED"


@dataclass(frozen=True)
class ShipmentSnapshot:
    """
    Shipment state plus fresh counts of containers that reached each status.
    """

    shipment_hash: str
    status: str
    number_of_containers: int
    assigned_transporter: str | None = None
    assigned_warehouse: str | None = None
    next_transporter: str | None = None
    assigned_retailer: str | None = None
    reached_counts: dict[str, int] = field(default_factory=dict)

    def reached(self, container_status: str) -> int:
        return self.reached_counts.get(container_status, 0)


Guard = Callable[[ShipmentSnapshot], "str | None"]


def _transporter_assigned(snapshot: ShipmentSnapshot) -> str | None:
    if snapshot.assigned_transporter or snapshot.next_transporter:
        return None
    return TransitionRejection.TRANSPORTER_NOT_ASSIGNED


def _next_leg_assigned(snapshot: ShipmentSnapshot) -> str | None:
    has_destination = bool(snapshot.assigned_retailer or snapshot.assigned_warehouse)
    if snapshot.next_transporter and has_destination:
        return None
    return TransitionRejection.NEXT_LEG_NOT_ASSIGNED


def _all_containers_reached(container_status: str) -> Guard:
    def guard(snapshot: ShipmentSnapshot) -> str | None:
        if snapshot.reached(container_status) >= snapshot.number_of_containers:
            return None
        return TransitionRejection.CONTAINERS_INCOMPLETE

    return guard


@dataclass(frozen=True)
class TransitionRule:
    from_status: str
    to_status: str
    guard: Guard
    description: str


TRANSITION_RULES: dict[tuple[str, str], TransitionRule] = {
    (rule.from_status, rule.to_status): rule
    for rule in (
        TransitionRule(
            ShipmentStatus.READY_FOR_DISPATCH,
            ShipmentStatus.IN_TRANSIT,
            _transporter_assigned,
            "Dispatch with an assigned transporter",
        ),
        TransitionRule(
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.AT_WAREHOUSE,
            _all_containers_reached(ContainerStatus.AT_WAREHOUSE),
            "Every container received at the warehouse",
        ),
        TransitionRule(
            ShipmentStatus.AT_WAREHOUSE,
            ShipmentStatus.READY_FOR_DISPATCH,
            _next_leg_assigned,
            "Next leg transporter and destination assigned",
        ),
        TransitionRule(
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.DELIVERED,
            _all_containers_reached(ContainerStatus.DELIVERED),
            "Every container delivered to the retailer",
        ),
        TransitionRule(
            ShipmentStatus.AT_WAREHOUSE,
            ShipmentStatus.DELIVERED,
            _all_containers_reached(ContainerStatus.DELIVERED),
            "Every container delivered straight from the warehouse",
        ),
        TransitionRule(
            ShipmentStatus.READY_FOR_DISPATCH,
            ShipmentStatus.DELIVERED,
            _all_containers_reached(ContainerStatus.DELIVERED),
            "Every container delivered before the next leg was dispatched",
        ),
    )
}


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    from_status: str
    to_status: str
    code: str | None = None
    message: str | None = None
    no_op: bool = False


def evaluate_transition(snapshot: ShipmentSnapshot, target_status: str) -> TransitionDecision:
    """
    Decide whether ``snapshot`` may move to ``target_status``.

    Requesting the current status is an allowed no-op.
    """

    current = snapshot.status
    if target_status == current:
        return TransitionDecision(
            allowed=True,
            from_status=current,
            to_status=target_status,
            no_op=True,
            message=f"Shipment is already {current}.",
        )

    rule = TRANSITION_RULES.get((current, target_status))
    if rule is None:
        return TransitionDecision(
            allowed=False,
            from_status=current,
            to_status=target_status,
            code=TransitionRejection.INVALID_TRANSITION,
            message=f"Transition {current} -> {target_status} is not permitted.",
        )

    rejection = rule.guard(snapshot)
    if rejection is not None:
        return TransitionDecision(
            allowed=False,
            from_status=current,
            to_status=target_status,
            code=rejection,
            message=f"Precondition failed for {current} -> {target_status}: {rule.description}.",
        )

    return TransitionDecision(allowed=True, from_status=current, to_status=target_status)
