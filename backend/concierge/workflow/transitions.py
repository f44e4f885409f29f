"""Order transition table -- pure data plus predicates.

No I/O. Built once at import as an immutable value and handed to the
Validator and executors by reference.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from concierge.workflow.types import (
    OrderStatus,
    Transition,
    WorkflowAction,
    WorkflowPhase,
)

_EDGES: tuple[Transition, ...] = (
    Transition(OrderStatus.PENDING, WorkflowAction.CONFIRM_ORDER, OrderStatus.CONFIRMED),
    Transition(OrderStatus.PENDING, WorkflowAction.ACCEPT_ORDER, OrderStatus.ASSIGNED),
    Transition(OrderStatus.CONFIRMED, WorkflowAction.ACCEPT_ORDER, OrderStatus.ASSIGNED),
    Transition(OrderStatus.ASSIGNED, WorkflowAction.START_SHOPPING, OrderStatus.SHOPPING),
    Transition(OrderStatus.SHOPPING, WorkflowAction.COMPLETE_SHOPPING, OrderStatus.PACKED),
    Transition(OrderStatus.PACKED, WorkflowAction.START_DELIVERY, OrderStatus.IN_TRANSIT),
    Transition(
        OrderStatus.IN_TRANSIT, WorkflowAction.COMPLETE_DELIVERY, OrderStatus.DELIVERED
    ),
)

# Status-level graph, independent of actions. Integrity repair consults it
# for cancellation; action edges must be a subset of it.
ALLOWED_STATUS_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = (
    MappingProxyType(
        {
            OrderStatus.PENDING: frozenset(
                {OrderStatus.CONFIRMED, OrderStatus.ASSIGNED, OrderStatus.CANCELLED}
            ),
            OrderStatus.CONFIRMED: frozenset(
                {OrderStatus.ASSIGNED, OrderStatus.CANCELLED}
            ),
            OrderStatus.ASSIGNED: frozenset(
                {OrderStatus.SHOPPING, OrderStatus.CANCELLED}
            ),
            OrderStatus.SHOPPING: frozenset({OrderStatus.PACKED, OrderStatus.CANCELLED}),
            OrderStatus.PACKED: frozenset(
                {OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED}
            ),
            OrderStatus.IN_TRANSIT: frozenset(
                {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
            ),
            OrderStatus.DELIVERED: frozenset({OrderStatus.CLOSED}),
            OrderStatus.CLOSED: frozenset(),
            OrderStatus.CANCELLED: frozenset(),
        }
    )
)

# Actions whose conditional write is keyed on the owning shopper.
OWNER_SCOPED_ACTIONS = frozenset(
    {
        WorkflowAction.START_SHOPPING,
        WorkflowAction.COMPLETE_SHOPPING,
        WorkflowAction.START_DELIVERY,
        WorkflowAction.COMPLETE_DELIVERY,
    }
)

# Actions that touch a single item and never change Order.status.
ITEM_SCOPED_ACTIONS = frozenset(
    {
        WorkflowAction.MARK_ITEM_FOUND,
        WorkflowAction.REQUEST_SUBSTITUTION,
    }
)

ACTION_PHASES: Mapping[WorkflowAction, WorkflowPhase] = MappingProxyType(
    {
        WorkflowAction.CONFIRM_ORDER: WorkflowPhase.ORDER_CONFIRMATION,
        WorkflowAction.ACCEPT_ORDER: WorkflowPhase.ORDER_ASSIGNMENT,
        WorkflowAction.START_SHOPPING: WorkflowPhase.SHOPPING,
        WorkflowAction.MARK_ITEM_FOUND: WorkflowPhase.SHOPPING,
        WorkflowAction.REQUEST_SUBSTITUTION: WorkflowPhase.SHOPPING,
        WorkflowAction.COMPLETE_SHOPPING: WorkflowPhase.SHOPPING,
        WorkflowAction.START_DELIVERY: WorkflowPhase.DELIVERY,
        WorkflowAction.COMPLETE_DELIVERY: WorkflowPhase.DELIVERY,
        WorkflowAction.ROLLBACK_STATUS: WorkflowPhase.ROLLBACK,
        WorkflowAction.ASSIGN_STAFF: WorkflowPhase.STAFF_ASSIGNMENT,
    }
)


def _freeze_roles(
    roles: Mapping[WorkflowAction, Iterable[str]],
) -> Mapping[WorkflowAction, frozenset[str]]:
    return MappingProxyType({action: frozenset(r) for action, r in roles.items()})


@dataclass(frozen=True)
class TransitionTable:
    """Immutable ``(from_status, action) -> to_status`` lookup.

    ``role_requirements`` restricts an action to actor roles; actions
    without an entry are open to any authenticated actor.
    """

    edges: tuple[Transition, ...] = _EDGES
    role_requirements: Mapping[WorkflowAction, frozenset[str]] = field(
        default_factory=lambda: _freeze_roles(
            {
                WorkflowAction.ACCEPT_ORDER: ("shopper", "admin", "sysadmin"),
                WorkflowAction.ROLLBACK_STATUS: ("admin", "sysadmin", "concierge"),
                WorkflowAction.ASSIGN_STAFF: ("admin", "sysadmin"),
            }
        )
    )
    _index: Mapping[tuple[OrderStatus, WorkflowAction], OrderStatus] = field(
        init=False, repr=False, compare=False
    )
    _targets: Mapping[WorkflowAction, OrderStatus] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        index: dict[tuple[OrderStatus, WorkflowAction], OrderStatus] = {}
        targets: dict[WorkflowAction, OrderStatus] = {}
        for edge in self.edges:
            index[(edge.from_status, edge.action)] = edge.to_status
            previous = targets.setdefault(edge.action, edge.to_status)
            if previous != edge.to_status:
                raise ValueError(
                    f"Action {edge.action.value} has conflicting targets: "
                    f"{previous.value}, {edge.to_status.value}"
                )
        # Frozen dataclass: bypass __setattr__ for derived indexes.
        object.__setattr__(self, "_index", MappingProxyType(index))
        object.__setattr__(self, "_targets", MappingProxyType(targets))

    @classmethod
    def with_roles(
        cls,
        accept_roles: Iterable[str],
        rollback_roles: Iterable[str],
        assign_roles: Iterable[str] = ("admin", "sysadmin"),
    ) -> TransitionTable:
        """Build the standard table with configured role requirements."""
        return cls(
            role_requirements=_freeze_roles(
                {
                    WorkflowAction.ACCEPT_ORDER: accept_roles,
                    WorkflowAction.ROLLBACK_STATUS: rollback_roles,
                    WorkflowAction.ASSIGN_STAFF: assign_roles,
                }
            )
        )

    def target_for(self, action: WorkflowAction) -> OrderStatus | None:
        """Order status an action moves to, or None for non-status actions."""
        return self._targets.get(action)

    def next_status(
        self,
        from_status: OrderStatus,
        action: WorkflowAction,
    ) -> OrderStatus | None:
        return self._index.get((from_status, action))

    def is_legal(
        self,
        from_status: OrderStatus,
        action: WorkflowAction,
        to_status: OrderStatus,
    ) -> bool:
        return self.next_status(from_status, action) == to_status

    def sources_for(self, action: WorkflowAction) -> frozenset[OrderStatus]:
        """Statuses from which ``action`` is legal."""
        return frozenset(e.from_status for e in self.edges if e.action == action)

    def allowed_from(self, status: OrderStatus) -> tuple[Transition, ...]:
        """Every transition legal from ``status``, in table order."""
        return tuple(e for e in self.edges if e.from_status == status)

    def requires_owner(self, action: WorkflowAction) -> bool:
        return action in OWNER_SCOPED_ACTIONS

    def role_allowed(self, action: WorkflowAction, role: str) -> bool:
        required = self.role_requirements.get(action)
        return required is None or role in required

    def phase_for(self, action: WorkflowAction) -> WorkflowPhase:
        return ACTION_PHASES[action]


DEFAULT_TRANSITIONS = TransitionTable()
