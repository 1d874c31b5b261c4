from __future__ import annotations

from alembic import op


revision = "0002_paid_order_guard"
down_revision = "0001_pos_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name != "postgresql":
        return

    op.execute(
        """
        CREATE OR REPLACE FUNCTION orders_guard_status()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'UPDATE' THEN
                IF OLD.status = 'completed' AND NEW.status = 'cancelled' THEN
                    RAISE EXCEPTION 'Paid orders cannot be cancelled';
                END IF;
                IF OLD.status = 'completed' AND NEW.status <> 'completed' THEN
                    RAISE EXCEPTION 'Completed orders cannot change status';
                END IF;
                IF OLD.status = 'cancelled' AND NEW.status <> 'cancelled' THEN
                    RAISE EXCEPTION 'Cancelled orders cannot change status';
                END IF;
            END IF;

            IF NEW.status = 'completed' THEN
                IF NEW.paid_at IS NULL THEN
                    NEW.paid_at := NOW();
                END IF;
                IF NEW.income_receipt_code IS NULL THEN
                    UPDATE receipt_sequences SET value = value + 1 WHERE name = 'income_receipt';
                    NEW.income_receipt_code := 'IC' || TO_CHAR(NEW.paid_at AT TIME ZONE 'UTC', 'DDMMYY')
                        || LPAD((SELECT value FROM receipt_sequences WHERE name = 'income_receipt')::text, 6, '0');
                END IF;
            ELSE
                NEW.paid_at := NULL;
                NEW.income_receipt_code := NULL;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute("DROP TRIGGER IF EXISTS orders_guard_status_trigger ON orders")
    op.execute(
        """
        CREATE TRIGGER orders_guard_status_trigger
        BEFORE INSERT OR UPDATE OF status ON orders
        FOR EACH ROW EXECUTE FUNCTION orders_guard_status();
        """
    )


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name != "postgresql":
        return
    op.execute("DROP TRIGGER IF EXISTS orders_guard_status_trigger ON orders")
    op.execute("DROP FUNCTION IF EXISTS orders_guard_status()")
