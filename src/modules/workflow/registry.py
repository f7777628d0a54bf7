"""Status registry: immutable per-entity state tables and the transition validator.

The registry is built once at application start (see ``build_status_registry``)
and shared by every workflow service.  All lookups are keyed by the lower-case
status code, so callers may pass either an enum member or its plain value.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from src.exceptions import IllegalTransitionException, ValidationException
from src.models.enums import EntityType


@dataclass(frozen=True)
class StatusDefinition:
    code: str
    label: str
    next: frozenset[str] = frozenset()

    @property
    def is_terminal(self) -> bool:
        return not self.next


def _code(state: str | enum.Enum) -> str:
    return state.value if isinstance(state, enum.Enum) else str(state)


def definitions_from_table(
    table: Mapping[enum.Enum, tuple[str, Iterable[enum.Enum]]],
) -> list[StatusDefinition]:
    """Convert a ``{status: (label, [next, ...])}`` constants table into definitions."""
    return [
        StatusDefinition(
            code=_code(status),
            label=label,
            next=frozenset(_code(n) for n in next_statuses),
        )
        for status, (label, next_statuses) in table.items()
    ]


class StatusRegistry:
    """Read-only lookup of state labels and legal-next sets per entity type."""

    def __init__(
        self, tables: Mapping[EntityType, Iterable[StatusDefinition]]
    ) -> None:
        built: dict[EntityType, Mapping[str, StatusDefinition]] = {}
        for entity_type, definitions in tables.items():
            by_code = {d.code: d for d in definitions}
            for definition in by_code.values():
                undeclared = definition.next - by_code.keys()
                if undeclared:
                    raise ValueError(
                        f"{entity_type.value} status '{definition.code}' references "
                        f"undeclared next states: {sorted(undeclared)}"
                    )
            built[entity_type] = MappingProxyType(by_code)
        self._tables: Mapping[EntityType, Mapping[str, StatusDefinition]] = MappingProxyType(built)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _table(self, entity_type: EntityType) -> Mapping[str, StatusDefinition]:
        try:
            return self._tables[entity_type]
        except KeyError:
            raise ValueError(f"No status table registered for '{entity_type}'") from None

    def get(self, entity_type: EntityType, state: str | enum.Enum) -> StatusDefinition:
        table = self._table(entity_type)
        code = _code(state)
        if code not in table:
            raise ValidationException(
                f"Unknown {entity_type.value} status '{code}'",
                details=[{"field": "status", "message": f"Must be one of {list(table)}"}],
            )
        return table[code]

    def entity_types(self) -> list[EntityType]:
        return list(self._tables)

    def definitions(self, entity_type: EntityType) -> list[StatusDefinition]:
        return list(self._table(entity_type).values())

    def legal_next(self, entity_type: EntityType, current: str | enum.Enum) -> frozenset[str]:
        return self.get(entity_type, current).next

    def label(self, entity_type: EntityType, state: str | enum.Enum) -> str:
        table = self._table(entity_type)
        code = _code(state)
        definition = table.get(code)
        return definition.label if definition else code

    def is_terminal(self, entity_type: EntityType, state: str | enum.Enum) -> bool:
        return self.get(entity_type, state).is_terminal

    def available_transitions(
        self, entity_type: EntityType, current: str | enum.Enum
    ) -> list[dict[str, str]]:
        """Legal next states with labels, in declaration order."""
        allowed = self.legal_next(entity_type, current)
        return [
            {"status": d.code, "label": d.label}
            for d in self._table(entity_type).values()
            if d.code in allowed
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def can_transition(
        self,
        entity_type: EntityType,
        current: str | enum.Enum,
        requested: str | enum.Enum,
    ) -> bool:
        return _code(requested) in self.legal_next(entity_type, current)

    def validate(
        self,
        entity_type: EntityType,
        current: str | enum.Enum,
        requested: str | enum.Enum,
    ) -> None:
        """Raise IllegalTransitionException unless ``requested`` is a legal next state."""
        self.get(entity_type, requested)
        allowed = self.legal_next(entity_type, current)
        if _code(requested) not in allowed:
            raise IllegalTransitionException(
                current=_code(current),
                requested=_code(requested),
                allowed=allowed,
            )


def build_status_registry() -> StatusRegistry:
    """Assemble the registry from the ticket, refund, and replacement tables."""
    from src.modules.refund.constants import REFUND_STATUSES
    from src.modules.replacement.constants import REPLACEMENT_STATUSES
    from src.modules.ticket.constants import TICKET_STATUSES

    return StatusRegistry(
        {
            EntityType.TICKET: definitions_from_table(TICKET_STATUSES),
            EntityType.REFUND: definitions_from_table(REFUND_STATUSES),
            EntityType.REPLACEMENT: definitions_from_table(REPLACEMENT_STATUSES),
        }
    )
