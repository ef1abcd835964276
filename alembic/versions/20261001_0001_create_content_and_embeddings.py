# mypy: ignore-errors
"""
Migration Alembic initiale: contenus curés et embeddings.

Crée `patterns` et `questions` (colonnes lues par le moteur) et `content_embeddings`, où chaque
ligne porte le vecteur, sa dimension, le marqueur de version du contenu et le modèle utilisé.
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "patterns",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("embedding_text", sa.Text(), nullable=False),
        sa.Column("trick", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "questions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("pattern_id", sa.String(length=64), sa.ForeignKey("patterns.id"), nullable=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_questions_pattern_id", "questions", ["pattern_id"])
    op.create_table(
        "content_embeddings",
        sa.Column("content_type", sa.String(length=16), primary_key=True),
        sa.Column("content_id", sa.String(length=64), primary_key=True),
        sa.Column("vector", sa.JSON(), nullable=False),
        sa.Column("dimension", sa.Integer(), nullable=False),
        sa.Column("version", sa.String(length=128), nullable=False),
        sa.Column("model", sa.String(length=128), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("content_embeddings")
    op.drop_index("ix_questions_pattern_id", table_name="questions")
    op.drop_table("questions")
    op.drop_table("patterns")
