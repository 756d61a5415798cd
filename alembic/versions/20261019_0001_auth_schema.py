"""Authorization schema - principals, roles, role permissions, tokens

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Uniqueness of principal identifiers holds among non-deleted rows only
NOT_DELETED = sa.text('status <> 9')


def _audit_columns():
    return [
        sa.Column('status', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    # Principals table
    op.create_table(
        'auth_principals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('pin', sa.String(4), nullable=True),
        *_audit_columns(),
    )
    for column in ('username', 'email', 'pin'):
        op.create_index(
            f'uq_auth_principals_{column}_active',
            'auth_principals',
            [column],
            unique=True,
            postgresql_where=NOT_DELETED,
            sqlite_where=NOT_DELETED,
        )

    # Roles table
    op.create_table(
        'auth_roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), unique=True, nullable=False),
        *_audit_columns(),
    )

    # Role permissions table
    op.create_table(
        'auth_role_permissions',
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('auth_roles.id'), primary_key=True),
        sa.Column('permission_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('read', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('write', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('execute', sa.Integer(), nullable=False, server_default='0'),
        *_audit_columns(),
    )

    # Principal roles join table
    op.create_table(
        'auth_principal_roles',
        sa.Column('principal_id', sa.Integer(), sa.ForeignKey('auth_principals.id'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('auth_roles.id'), primary_key=True),
    )

    # Issued tokens table
    op.create_table(
        'auth_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('token_hash', sa.String(64), unique=True, nullable=True),
        sa.Column('principal_id', sa.Integer(), sa.ForeignKey('auth_principals.id'), nullable=True, index=True),
        sa.Column('subject', sa.String(45), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_audit_columns(),
    )


def downgrade() -> None:
    op.drop_table('auth_tokens')
    op.drop_table('auth_principal_roles')
    op.drop_table('auth_role_permissions')
    op.drop_table('auth_roles')
    for column in ('username', 'email', 'pin'):
        op.drop_index(f'uq_auth_principals_{column}_active', table_name='auth_principals')
    op.drop_table('auth_principals')
