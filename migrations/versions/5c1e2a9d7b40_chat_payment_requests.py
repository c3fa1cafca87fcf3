"""chat threads, encrypted messages and payment requests

Revision ID: 5c1e2a9d7b40
Revises:
Create Date: 2026-10-18 09:12:44.310522

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c1e2a9d7b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Create the chat, payment-request and collaborator tables."""
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_code", sa.String(length=16), nullable=True),
        _timestamp("payment_code_expires_at"),
        sa.Column("payment_code_channel", sa.String(length=16), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "contact",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("peer_id", sa.Integer(), nullable=False),
        sa.Column("label", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["owner_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["peer_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", "peer_id", name="uq_contact_owner_peer"),
    )
    op.create_index("ix_contact_owner_id", "contact", ["owner_id"])

    op.create_table(
        "wallet",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(length=128), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("address"),
    )
    op.create_index("ix_wallet_user_id", "wallet", ["user_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])

    op.create_table(
        "chat_key",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("public_key_jwk", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_key_user_id", "chat_key", ["user_id"], unique=True)

    op.create_table(
        "chat_thread",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("participant_a_id", sa.Integer(), nullable=False),
        sa.Column("participant_b_id", sa.Integer(), nullable=False),
        sa.Column("participant_key", sa.String(length=64), nullable=False),
        _timestamp("last_message_at", nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["participant_a_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["participant_b_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_thread_participant_key", "chat_thread", ["participant_key"], unique=True)
    op.create_index("ix_chat_thread_last_message_at", "chat_thread", ["last_message_at"])

    op.create_table(
        "chat_report",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("thread_id", sa.Integer(), nullable=False),
        sa.Column("reported_by_user_id", sa.Integer(), nullable=False),
        sa.Column("target_user_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("revealed_messages", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["thread_id"], ["chat_thread.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reported_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["target_user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_report_thread_id", "chat_report", ["thread_id"])

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("receiver_id", sa.Integer(), nullable=False),
        sa.Column("sender_wallet", sa.String(length=128), nullable=False),
        sa.Column("receiver_wallet", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(precision=36, scale=18), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("asset_symbol", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("tx_hash", sa.String(length=128), nullable=True),
        _timestamp("created_at", nullable=False),
        _timestamp("updated_at", nullable=False),
        sa.ForeignKeyConstraint(["sender_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["receiver_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transaction_sender_id", "transaction", ["sender_id"])
    op.create_index("ix_transaction_receiver_id", "transaction", ["receiver_id"])

    op.create_table(
        "payment_request",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("thread_id", sa.Integer(), nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(precision=36, scale=18), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        _timestamp("processing_at"),
        _timestamp("paid_at"),
        sa.Column("paid_by_user_id", sa.Integer(), nullable=True),
        sa.Column("paid_transaction_id", sa.Integer(), nullable=True),
        sa.Column("paid_tx_hash", sa.String(length=128), nullable=True),
        _timestamp("cancelled_at"),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at", nullable=False),
        sa.ForeignKeyConstraint(["thread_id"], ["chat_thread.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requester_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["target_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["paid_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["paid_transaction_id"], ["transaction.id"]),
        sa.ForeignKeyConstraint(["cancelled_by_user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payment_request_thread_id", "payment_request", ["thread_id"])
    op.create_index("ix_payment_request_status", "payment_request", ["status"])
    op.create_index("ix_payment_request_thread_created", "payment_request", ["thread_id", "created_at"])

    op.create_table(
        "chat_message",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("thread_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("message_type", sa.String(length=16), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=True),
        sa.Column("sender_ciphertext", sa.Text(), nullable=False),
        sa.Column("sender_iv", sa.String(length=256), nullable=False),
        sa.Column("sender_wrapped_key", sa.Text(), nullable=False),
        sa.Column("recipient_ciphertext", sa.Text(), nullable=False),
        sa.Column("recipient_iv", sa.String(length=256), nullable=False),
        sa.Column("recipient_wrapped_key", sa.Text(), nullable=False),
        _timestamp("created_at", nullable=False),
        sa.ForeignKeyConstraint(["thread_id"], ["chat_thread.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["recipient_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["request_id"], ["payment_request.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_message_thread_id", "chat_message", ["thread_id"])
    op.create_index("ix_chat_message_request_id", "chat_message", ["request_id"])
    op.create_index("ix_chat_message_thread_created", "chat_message", ["thread_id", "created_at"])


def downgrade() -> None:
    """Drop everything created in upgrade, children first."""
    op.drop_table("chat_message")
    op.drop_table("payment_request")
    op.drop_table("transaction")
    op.drop_table("chat_report")
    op.drop_table("chat_thread")
    op.drop_table("chat_key")
    op.drop_table("audit_log")
    op.drop_table("wallet")
    op.drop_table("contact")
    op.drop_table("user_account")
