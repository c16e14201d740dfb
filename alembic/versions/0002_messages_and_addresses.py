from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0002_messages_and_addresses"
down_revision = "0001_marketplace_schema"
branch_labels = None
depends_on = None

_ADDRESS_COLUMNS = (
    ("address_street", 255),
    ("address_city", 120),
    ("address_postal_code", 20),
    ("address_country", 80),
)


def _columns_by_name(table_name: str) -> set[str]:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    return {column["name"] for column in inspector.get_columns(table_name)}


def upgrade() -> None:
    existing = _columns_by_name("users")
    for name, length in _ADDRESS_COLUMNS:
        if name not in existing:
            op.add_column("users", sa.Column(name, sa.String(length=length), nullable=True))

    if "messages" not in set(sa.inspect(op.get_bind()).get_table_names()):
        op.create_table(
            "messages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("thread_id", sa.Integer(), sa.ForeignKey("messages.id"), nullable=True),
            sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("recipient_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("subject", sa.String(length=100), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("sender_id <> recipient_id", name="ck_messages_not_to_self"),
        )
        op.create_index("ix_messages_thread_id", "messages", ["thread_id"])
        op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
        op.create_index("ix_messages_recipient_id", "messages", ["recipient_id"])


def downgrade() -> None:
    if "messages" in set(sa.inspect(op.get_bind()).get_table_names()):
        op.drop_table("messages")

    existing = _columns_by_name("users")
    with op.batch_alter_table("users") as batch:
        for name, _ in reversed(_ADDRESS_COLUMNS):
            if name in existing:
                batch.drop_column(name)
