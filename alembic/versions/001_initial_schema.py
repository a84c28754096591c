"""Initial schema: teams, tournaments, bracket matches, veto sessions and settings

Revision ID: 001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "team",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("tag", sa.String(), nullable=True),
        sa.Column("players", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("maps", sa.JSON(), nullable=False),
        sa.Column("team_ids", sa.JSON(), nullable=False),
        sa.Column("veto_order", sa.JSON(), nullable=True),
        sa.Column("champion_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["champion_id"], ["team.id"]),
    )

    op.create_table(
        "match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("match_number", sa.Integer(), nullable=False),
        sa.Column("team1_id", sa.String(), nullable=True),
        sa.Column("team2_id", sa.String(), nullable=True),
        sa.Column("server_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("winner_id", sa.String(), nullable=True),
        sa.Column("next_match_id", sa.Integer(), nullable=True),
        sa.Column("next_match_slot", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["team1_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["team2_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["next_match_id"], ["match.id"]),
        sa.UniqueConstraint("tournament_id", "round_number", "match_number", name="uq_match_bracket_position"),
    )
    op.create_index("ix_match_slug", "match", ["slug"], unique=True)
    op.create_index("ix_match_tournament_id", "match", ["tournament_id"])

    op.create_table(
        "vetosession",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("format_id", sa.String(), nullable=False),
        sa.Column("map_pool", sa.JSON(), nullable=False),
        sa.Column("steps", sa.JSON(), nullable=False),
        sa.Column("team1_id", sa.String(), nullable=True),
        sa.Column("team2_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["team1_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["team2_id"], ["team.id"]),
        sa.UniqueConstraint("match_id"),
    )

    # Append-only veto log; the unique pair rejects a second writer for the same step
    op.create_table(
        "vetoaction",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("veto_session_id", sa.Integer(), nullable=False),
        sa.Column("step_index", sa.Integer(), nullable=False),
        sa.Column("team", sa.String(), nullable=False),
        sa.Column("team_slug", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("map_name", sa.String(), nullable=True),
        sa.Column("side", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["veto_session_id"], ["vetosession.id"]),
        sa.UniqueConstraint("veto_session_id", "step_index", name="uq_vetoaction_session_step"),
    )
    op.create_index("ix_vetoaction_veto_session_id", "vetoaction", ["veto_session_id"])

    op.create_table(
        "appsetting",
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("value", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("appsetting")
    op.drop_index("ix_vetoaction_veto_session_id", table_name="vetoaction")
    op.drop_table("vetoaction")
    op.drop_table("vetosession")
    op.drop_index("ix_match_tournament_id", table_name="match")
    op.drop_index("ix_match_slug", table_name="match")
    op.drop_table("match")
    op.drop_table("tournament")
    op.drop_table("team")
