"""enable rls on all tables

Revision ID: 8c2d4e6f1a30
Revises: 3e1f0c7a9b21
Create Date: 2026-10-19

The API connects with the service role; Supabase's anon/authenticated roles
get no direct table access.
"""
from typing import Sequence, Union
from alembic import op

revision: str = "8c2d4e6f1a30"
down_revision: Union[str, Sequence[str], None] = "3e1f0c7a9b21"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ALL_TABLES = [
    "users",
    "customers",
    "images",
    "subscriptions",
    "purchases",
    "image_downloads",
]


def upgrade() -> None:
    if op.get_context().dialect.name != "postgresql":
        return
    for table in ALL_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f'CREATE POLICY "deny_all_{table}" ON {table} '
            f"FOR ALL TO anon, authenticated USING (false)"
        )


def downgrade() -> None:
    if op.get_context().dialect.name != "postgresql":
        return
    for table in ALL_TABLES:
        op.execute(f'DROP POLICY IF EXISTS "deny_all_{table}" ON {table}')
        op.execute(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
