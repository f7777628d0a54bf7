"""Unit tests for the status registry and transition validator."""

import pytest

from src.exceptions import IllegalTransitionException, ValidationException
from src.models.enums import EntityType, RefundStatus, ReplacementStatus, TicketStatus
from src.modules.workflow.registry import (
    StatusDefinition,
    StatusRegistry,
    build_status_registry,
)


@pytest.fixture
def registry():
    return build_status_registry()


class TestRegistryConstruction:
    def test_rejects_undeclared_next_state(self):
        with pytest.raises(ValueError, match="undeclared"):
            StatusRegistry(
                {
                    EntityType.TICKET: [
                        StatusDefinition("open", "Open", frozenset({"done"})),
                    ]
                }
            )

    def test_registers_all_three_entity_types(self, registry):
        assert set(registry.entity_types()) == {
            EntityType.TICKET,
            EntityType.REFUND,
            EntityType.REPLACEMENT,
        }

    @pytest.mark.parametrize(
        "entity_type", [EntityType.TICKET, EntityType.REFUND, EntityType.REPLACEMENT]
    )
    def test_terminal_states_have_no_next(self, registry, entity_type):
        for definition in registry.definitions(entity_type):
            assert definition.is_terminal == (len(definition.next) == 0)
            for code in definition.next:
                registry.get(entity_type, code)

    def test_unknown_status_lookup_is_validation_error(self, registry):
        with pytest.raises(ValidationException):
            registry.get(EntityType.REFUND, "lost")

    def test_unregistered_entity_type(self):
        registry = StatusRegistry({})
        with pytest.raises(ValueError):
            registry.definitions(EntityType.ORDER)


class TestTicketGraph:
    def test_open_can_reach_every_working_state(self, registry):
        assert registry.legal_next(EntityType.TICKET, TicketStatus.OPEN) == {
            "in_progress", "awaiting_customer", "awaiting_internal",
            "escalated", "resolved", "closed",
        }

    def test_escalated_cannot_return_to_open(self, registry):
        assert not registry.can_transition(
            EntityType.TICKET, TicketStatus.ESCALATED, TicketStatus.OPEN
        )

    @pytest.mark.parametrize("terminal", [TicketStatus.RESOLVED, TicketStatus.CLOSED])
    def test_resolved_and_closed_are_terminal(self, registry, terminal):
        assert registry.is_terminal(EntityType.TICKET, terminal)
        assert registry.available_transitions(EntityType.TICKET, terminal) == []


class TestRefundGraph:
    def test_failed_can_be_retried_or_rejected(self, registry):
        assert registry.legal_next(EntityType.REFUND, RefundStatus.FAILED) == {
            "processing", "rejected",
        }

    def test_approved_cannot_complete_directly(self, registry):
        with pytest.raises(IllegalTransitionException) as exc_info:
            registry.validate(EntityType.REFUND, RefundStatus.APPROVED, RefundStatus.COMPLETED)
        exc = exc_info.value
        assert exc.current == "approved"
        assert exc.requested == "completed"
        assert exc.allowed == ["processing"]
        assert exc.status_code == 409


class TestReplacementGraph:
    def test_shipped_cannot_be_cancelled(self, registry):
        assert not registry.can_transition(
            EntityType.REPLACEMENT, ReplacementStatus.SHIPPED, ReplacementStatus.CANCELLED
        )

    def test_pending_label(self, registry):
        assert registry.label(EntityType.REPLACEMENT, ReplacementStatus.PENDING) == (
            "Pending Approval"
        )

    def test_validate_accepts_plain_codes(self, registry):
        registry.validate(EntityType.REPLACEMENT, "delivered", "completed")

    def test_validate_rejects_unknown_target(self, registry):
        with pytest.raises(ValidationException):
            registry.validate(EntityType.REPLACEMENT, "pending", "teleported")


class TestAvailableTransitions:
    def test_lists_labels_in_declaration_order(self, registry):
        options = registry.available_transitions(EntityType.REFUND, RefundStatus.PROCESSING)
        assert options == [
            {"status": "completed", "label": "Completed"},
            {"status": "failed", "label": "Failed"},
        ]

    def test_unchanged_after_rejected_transition(self, registry):
        before = registry.available_transitions(EntityType.TICKET, TicketStatus.ESCALATED)
        with pytest.raises(IllegalTransitionException):
            registry.validate(EntityType.TICKET, TicketStatus.ESCALATED, TicketStatus.OPEN)
        assert registry.available_transitions(EntityType.TICKET, TicketStatus.ESCALATED) == before
