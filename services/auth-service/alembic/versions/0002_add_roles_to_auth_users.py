from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade():
    # nullable first so existing rows can be backfilled
    op.add_column("auth_users", sa.Column("roles", sa.JSON(), nullable=True))
    op.add_column("auth_users", sa.Column("is_active", sa.Boolean(), nullable=True))

    op.execute("UPDATE auth_users SET roles = '[\"customer\"]' WHERE roles IS NULL")
    op.execute("UPDATE auth_users SET is_active = TRUE WHERE is_active IS NULL")

    op.alter_column("auth_users", "roles", nullable=False)
    op.alter_column("auth_users", "is_active", nullable=False)


def downgrade():
    op.drop_column("auth_users", "is_active")
    op.drop_column("auth_users", "roles")
