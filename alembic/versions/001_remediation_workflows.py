"""Remediation workflow tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19

Creates: orders, return_requests, tickets, ticket_messages, ticket_escalations,
         refunds, replacement_orders, workflow_activities, event_outbox,
         processed_events
Enumerations are stored as lower-case VARCHAR codes guarded by CHECK constraints.
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')
    op.execute('CREATE EXTENSION IF NOT EXISTS "pg_trgm";')

    # ── 1. Collaborator records ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE orders (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_number VARCHAR(50) NOT NULL,
            customer_id UUID NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'pending',
            total_amount NUMERIC(15, 2) NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'USD',
            items JSONB NOT NULL DEFAULT '[]'::jsonb,

            -- Delivery details
            delivery_address TEXT,
            city VARCHAR(100),
            postal_code VARCHAR(20),
            phone VARCHAR(30),
            notes TEXT,

            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_orders_order_number UNIQUE (order_number),
            CONSTRAINT ck_orders_status CHECK (status IN (
                'pending', 'confirmed', 'processing', 'shipped', 'delivered',
                'cancelled', 'refunded', 'replacement_initiated'
            ))
        );
    """)
    op.execute("CREATE INDEX ix_orders_customer_id ON orders (customer_id);")
    op.execute("CREATE INDEX ix_orders_status ON orders (status);")

    op.execute("""
        CREATE TABLE return_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            return_number VARCHAR(50) NOT NULL,
            order_id UUID NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
            customer_id UUID NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'pending',
            requested_action VARCHAR(20) NOT NULL DEFAULT 'refund',
            completed_at TIMESTAMPTZ,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_return_requests_return_number UNIQUE (return_number)
        );
    """)
    op.execute("CREATE INDEX ix_return_requests_order_id ON return_requests (order_id);")

    # ── 2. Support tickets ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE tickets (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            ticket_number VARCHAR(20) NOT NULL,
            customer_id UUID NOT NULL,
            customer_name VARCHAR(255),
            order_id UUID REFERENCES orders(id) ON DELETE SET NULL,

            subject VARCHAR(500) NOT NULL,
            description TEXT NOT NULL,
            category VARCHAR(32) NOT NULL DEFAULT 'general',
            priority VARCHAR(32) NOT NULL DEFAULT 'medium',
            status VARCHAR(32) NOT NULL DEFAULT 'open',

            -- SLA
            sla_hours INTEGER NOT NULL,
            sla_due_at TIMESTAMPTZ NOT NULL,
            sla_breached BOOLEAN NOT NULL DEFAULT FALSE,
            sla_breach_notified_at TIMESTAMPTZ,
            escalation_level INTEGER NOT NULL DEFAULT 0,

            -- Assignment and response tracking
            assigned_to UUID,
            assigned_at TIMESTAMPTZ,
            first_response_at TIMESTAMPTZ,
            last_response_at TIMESTAMPTZ,

            -- Closure
            resolution_summary TEXT,
            closed_at TIMESTAMPTZ,
            closed_by UUID,

            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_tickets_ticket_number UNIQUE (ticket_number),
            CONSTRAINT ck_tickets_status CHECK (status IN (
                'open', 'in_progress', 'awaiting_customer', 'awaiting_internal',
                'escalated', 'resolved', 'closed'
            )),
            CONSTRAINT ck_tickets_priority CHECK (priority IN ('low', 'medium', 'high', 'urgent'))
        );
    """)
    op.execute("CREATE INDEX ix_tickets_customer_id ON tickets (customer_id);")
    op.execute("CREATE INDEX ix_tickets_status ON tickets (status);")
    op.execute("CREATE INDEX ix_tickets_assigned_to ON tickets (assigned_to);")
    op.execute("CREATE INDEX ix_tickets_sla_due_at ON tickets (sla_due_at);")
    op.execute("CREATE INDEX ix_tickets_subject_trgm ON tickets USING gin (subject gin_trgm_ops);")

    op.execute("""
        CREATE TABLE ticket_messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            ticket_id UUID NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
            sender_type VARCHAR(32) NOT NULL,
            sender_id UUID NOT NULL,
            sender_name VARCHAR(255),
            message TEXT NOT NULL,
            is_internal BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_ticket_messages_ticket_id ON ticket_messages (ticket_id);")

    op.execute("""
        CREATE TABLE ticket_escalations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            ticket_id UUID NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
            previous_level INTEGER NOT NULL,
            new_level INTEGER NOT NULL,
            escalated_by UUID NOT NULL,
            escalated_to UUID,
            reason TEXT NOT NULL,
            notes TEXT,
            resolved_at TIMESTAMPTZ,
            resolved_by UUID,
            resolution_notes TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_ticket_escalations_ticket_id ON ticket_escalations (ticket_id);")

    # ── 3. Refunds ─────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE refunds (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            refund_number VARCHAR(50) NOT NULL,
            order_id UUID NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
            return_id UUID REFERENCES return_requests(id) ON DELETE SET NULL,

            amount NUMERIC(15, 2) NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'USD',
            reason VARCHAR(32) NOT NULL,
            payment_mode VARCHAR(32) NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'pending',

            -- Processing
            transaction_id VARCHAR(100),
            bank_reference VARCHAR(100),
            failure_reason TEXT,
            notes TEXT,
            initiated_by UUID NOT NULL,
            processed_by UUID,
            processed_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,

            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_refunds_refund_number UNIQUE (refund_number),
            CONSTRAINT ck_refunds_amount_positive CHECK (amount > 0),
            CONSTRAINT ck_refunds_status CHECK (status IN (
                'pending', 'approved', 'processing', 'completed', 'failed', 'rejected'
            ))
        );
    """)
    op.execute("CREATE INDEX ix_refunds_order_id ON refunds (order_id);")
    op.execute("CREATE INDEX ix_refunds_return_id ON refunds (return_id);")
    op.execute("CREATE INDEX ix_refunds_status ON refunds (status);")

    # ── 4. Replacements ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE replacement_orders (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            replacement_number VARCHAR(50) NOT NULL,
            original_order_id UUID NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
            replacement_order_id UUID REFERENCES orders(id) ON DELETE SET NULL,
            return_id UUID REFERENCES return_requests(id) ON DELETE SET NULL,

            reason VARCHAR(32) NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'pending',
            items JSONB NOT NULL DEFAULT '[]'::jsonb,
            notes TEXT,
            rejection_reason TEXT,

            created_by UUID NOT NULL,
            approved_by UUID,
            approved_at TIMESTAMPTZ,

            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_replacement_orders_replacement_number UNIQUE (replacement_number),
            CONSTRAINT ck_replacement_orders_status CHECK (status IN (
                'pending', 'approved', 'processing', 'shipped', 'delivered',
                'completed', 'rejected', 'cancelled'
            ))
        );
    """)
    op.execute(
        "CREATE INDEX ix_replacement_orders_original_order_id "
        "ON replacement_orders (original_order_id);"
    )
    op.execute("CREATE INDEX ix_replacement_orders_status ON replacement_orders (status);")

    # ── 5. Activity log ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE workflow_activities (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            entity_type VARCHAR(32) NOT NULL,
            entity_id UUID NOT NULL,
            activity_type VARCHAR(50) NOT NULL,
            actor_id UUID NOT NULL,
            actor_name VARCHAR(255),
            actor_role VARCHAR(32) NOT NULL,
            field_name VARCHAR(50),
            old_value TEXT,
            new_value TEXT,
            description TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_workflow_activities_entity "
        "ON workflow_activities (entity_type, entity_id);"
    )
    op.execute("CREATE INDEX ix_workflow_activities_created_at ON workflow_activities (created_at);")

    # ── 6. Event outbox ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(255) NOT NULL,
            aggregate_type VARCHAR(255) NOT NULL,
            aggregate_id VARCHAR(255) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            processed_at TIMESTAMPTZ,
            schema_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_event_outbox_status ON event_outbox (status);")
    op.execute("CREATE INDEX ix_event_outbox_event_type ON event_outbox (event_type);")
    op.execute(
        "CREATE INDEX ix_event_outbox_aggregate ON event_outbox (aggregate_type, aggregate_id);"
    )

    op.execute("""
        CREATE TABLE processed_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_id UUID NOT NULL,
            event_type VARCHAR(255) NOT NULL,
            handler_name VARCHAR(255) NOT NULL,
            processed_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            expires_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_processed_events_event_id UNIQUE (event_id)
        );
    """)
    op.execute("CREATE INDEX ix_processed_events_expires_at ON processed_events (expires_at);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS processed_events CASCADE;")
    op.execute("DROP TABLE IF EXISTS event_outbox CASCADE;")
    op.execute("DROP TABLE IF EXISTS workflow_activities CASCADE;")
    op.execute("DROP TABLE IF EXISTS replacement_orders CASCADE;")
    op.execute("DROP TABLE IF EXISTS refunds CASCADE;")
    op.execute("DROP TABLE IF EXISTS ticket_escalations CASCADE;")
    op.execute("DROP TABLE IF EXISTS ticket_messages CASCADE;")
    op.execute("DROP TABLE IF EXISTS tickets CASCADE;")
    op.execute("DROP TABLE IF EXISTS return_requests CASCADE;")
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
