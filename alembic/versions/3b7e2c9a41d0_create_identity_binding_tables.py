"""create accounts, identity bindings and binding events

Revision ID: 3b7e2c9a41d0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7e2c9a41d0"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), server_default="", nullable=False),
        sa.Column("userpic_url", sa.String(), nullable=True),
        sa.Column("emails", sa.JSON(), nullable=False),
        sa.Column("phones", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "identity_bindings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("remote_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("token_params", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("remote_id", name="uq_identity_bindings_remote_id"),
        sa.UniqueConstraint("account_id", name="uq_identity_bindings_account_id"),
    )
    op.create_index(
        op.f("ix_identity_bindings_remote_id"),
        "identity_bindings",
        ["remote_id"],
        unique=False,
    )
    op.create_table(
        "binding_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_key", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("remote_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_binding_events_event_key"), "binding_events", ["event_key"], unique=True
    )
    op.create_index(
        op.f("ix_binding_events_action"), "binding_events", ["action"], unique=False
    )
    op.create_index(
        op.f("ix_binding_events_remote_id"), "binding_events", ["remote_id"], unique=False
    )
    op.create_index(
        op.f("ix_binding_events_account_id"), "binding_events", ["account_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_binding_events_account_id"), table_name="binding_events")
    op.drop_index(op.f("ix_binding_events_remote_id"), table_name="binding_events")
    op.drop_index(op.f("ix_binding_events_action"), table_name="binding_events")
    op.drop_index(op.f("ix_binding_events_event_key"), table_name="binding_events")
    op.drop_table("binding_events")
    op.drop_index(op.f("ix_identity_bindings_remote_id"), table_name="identity_bindings")
    op.drop_table("identity_bindings")
    op.drop_table("accounts")
