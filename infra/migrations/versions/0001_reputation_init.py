"""Create wallet users and score records."""

from alembic import op
import sqlalchemy as sa

revision = "0001_reputation_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "reputation_users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("public_key", sa.String(64), nullable=False),
        sa.Column("github_username", sa.String(128), nullable=True),
        sa.Column("is_verified_github", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("twitter_username", sa.String(128), nullable=True),
        sa.Column("is_verified_twitter", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("discord_username", sa.String(128), nullable=True),
        sa.Column("is_verified_discord", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("discord_id", sa.String(64), nullable=True),
        sa.Column("discord_email", sa.String(255), nullable=True),
        sa.Column("discord_avatar", sa.String(255), nullable=True),
        sa.Column("discord_profile_url", sa.String(255), nullable=True),
        sa.Column("discord_verified", sa.Boolean, nullable=True),
        sa.Column("discord_discriminator", sa.String(8), nullable=True),
        sa.Column("discord_guild_count", sa.Integer, nullable=True),
        sa.Column("discord_premium_type", sa.Integer, nullable=True),
        sa.Column("discord_mfa_enabled", sa.Boolean, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_reputation_users_public_key", "reputation_users", ["public_key"], unique=True
    )

    op.create_table(
        "reputation_scores",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("public_key", sa.String(64), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("score_value", sa.Integer, nullable=False),
        sa.Column("source", sa.String(32), nullable=False, server_default="manual"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.UniqueConstraint("public_key", "category", name="uq_reputation_score"),
    )
    op.create_index("ix_reputation_scores_public_key", "reputation_scores", ["public_key"])


def downgrade():
    op.drop_index("ix_reputation_scores_public_key", table_name="reputation_scores")
    op.drop_table("reputation_scores")
    op.drop_index("ix_reputation_users_public_key", table_name="reputation_users")
    op.drop_table("reputation_users")
