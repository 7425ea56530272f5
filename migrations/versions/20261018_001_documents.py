"""Document store table for swipes, matches and profiles

Revision ID: 20261018_001
Revises:
Create Date: 2026-10-18 10:00:00

Swipes, matches and profiles live in one table addressed by
(collection, key). The composite primary key is what makes
INSERT ... ON CONFLICT DO NOTHING an atomic create-if-absent, which match
creation depends on to never produce two matches for one pair.

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create documents table and query indexes."""
    op.create_table(
        "documents",
        sa.Column("collection", sa.String(length=64), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("doc", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("collection", "key"),
    )
    op.create_index("idx_documents_collection_updated", "documents", ["collection", "updated_at"])

    # Expression indexes for the equality lookups the matching core runs (PostgreSQL only)
    if op.get_bind().dialect.name == "postgresql":
        # likes received: to_user + action + active
        op.execute(
            """
            CREATE INDEX idx_documents_swipes_to_user
            ON documents ((doc ->> 'to_user'))
            WHERE collection = 'swipes' AND doc ->> 'action' = 'like' AND (doc ->> 'active')::boolean;
        """
        )
        # match generations of a pair
        op.execute(
            """
            CREATE INDEX idx_documents_matches_pair
            ON documents ((doc ->> 'pair_key'))
            WHERE collection = 'matches';
        """
        )
        # active matches per user
        op.execute(
            """
            CREATE INDEX idx_documents_matches_user_a
            ON documents ((doc ->> 'user_a'))
            WHERE collection = 'matches' AND (doc ->> 'active')::boolean;
        """
        )
        op.execute(
            """
            CREATE INDEX idx_documents_matches_user_b
            ON documents ((doc ->> 'user_b'))
            WHERE collection = 'matches' AND (doc ->> 'active')::boolean;
        """
        )


def downgrade() -> None:
    """Drop documents table."""
    if op.get_bind().dialect.name == "postgresql":
        op.drop_index("idx_documents_matches_user_b", table_name="documents")
        op.drop_index("idx_documents_matches_user_a", table_name="documents")
        op.drop_index("idx_documents_matches_pair", table_name="documents")
        op.drop_index("idx_documents_swipes_to_user", table_name="documents")
    op.drop_index("idx_documents_collection_updated", table_name="documents")
    op.drop_table("documents")
