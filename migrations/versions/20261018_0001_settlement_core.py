from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "challenges",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("creator_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pact_type", sa.String(length=16), nullable=False, server_default="public"),
        sa.Column("proof_validation_mode", sa.String(length=16), nullable=False, server_default="organizer"),
        sa.Column("min_bet_cents", sa.BigInteger(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("commission_bps_public", sa.Integer(), nullable=False, server_default="500"),
        sa.Column("commission_bps_friends", sa.Integer(), nullable=False, server_default="300"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("ends_at >= starts_at", name="ck_challenge_dates"),
        sa.CheckConstraint("min_bet_cents > 0", name="ck_challenge_min_bet"),
    )
    op.create_index("ix_challenges_creator_id", "challenges", ["creator_id"])
    # sweep scans active challenges by end date
    op.create_index("ix_challenges_status_ends_at", "challenges", ["status", "ends_at"])

    op.create_table(
        "participations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("challenge_id", sa.Uuid(), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("bet_cents", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("earnings_cents", sa.BigInteger(), nullable=True),
        sa.UniqueConstraint("challenge_id", "user_id", name="uq_participation_once_per_user"),
        sa.CheckConstraint("bet_cents > 0", name="ck_participation_bet_positive"),
    )
    op.create_index("ix_participations_challenge_id", "participations", ["challenge_id"])
    op.create_index("ix_participations_user_id", "participations", ["user_id"])

    op.create_table(
        "proofs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("participation_id", sa.Uuid(), sa.ForeignKey("participations.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("challenge_id", sa.Uuid(), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("value", sa.Float(), nullable=True),
        sa.Column("confidence", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("resolution_reason", sa.String(length=32), nullable=True),
        sa.Column("organizer_validation", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("organizer_comment", sa.Text(), nullable=True),
        sa.Column("validated_by", sa.Uuid(), nullable=True),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approve_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("veto_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_proofs_challenge_id", "proofs", ["challenge_id"])
    op.create_index("ix_proofs_user_id", "proofs", ["user_id"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("proof_id", sa.Uuid(), sa.ForeignKey("proofs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("voter_id", sa.Uuid(), nullable=False),
        sa.Column("vote_type", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("proof_id", "voter_id", name="uq_vote_once_per_voter"),
    )
    op.create_index("ix_votes_proof_id", "votes", ["proof_id"])
    op.create_index("ix_votes_voter_id", "votes", ["voter_id"])

    op.create_table(
        "accounts",
        sa.Column("user_id", sa.Uuid(), primary_key=True),
        sa.Column("balance_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("balance_cents >= 0", name="ck_account_non_negative"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("challenge_id", sa.Uuid(), sa.ForeignKey("challenges.id", ondelete="SET NULL"), nullable=True),
        sa.Column("participation_id", sa.Uuid(), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("external_id", sa.String(length=96), nullable=True, unique=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_ledger_entries_user_id", "ledger_entries", ["user_id"])
    op.create_index("ix_ledger_entries_challenge_id", "ledger_entries", ["challenge_id"])

    op.create_table(
        "distribution_receipts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("challenge_id", sa.Uuid(), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("distributed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("result_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("credited_cents", sa.BigInteger(), nullable=False),
        sa.Column("platform_cents", sa.BigInteger(), nullable=False),
    )

def downgrade() -> None:
    op.drop_table("distribution_receipts")
    op.drop_index("ix_ledger_entries_challenge_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_user_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("accounts")
    op.drop_index("ix_votes_voter_id", table_name="votes")
    op.drop_index("ix_votes_proof_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_proofs_user_id", table_name="proofs")
    op.drop_index("ix_proofs_challenge_id", table_name="proofs")
    op.drop_table("proofs")
    op.drop_index("ix_participations_user_id", table_name="participations")
    op.drop_index("ix_participations_challenge_id", table_name="participations")
    op.drop_table("participations")
    op.drop_index("ix_challenges_status_ends_at", table_name="challenges")
    op.drop_index("ix_challenges_creator_id", table_name="challenges")
    op.drop_table("challenges")
