"""Create inventory tables

Revision ID: 5a1f0c3e2b7d
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5a1f0c3e2b7d"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("short_code", sa.String(60), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("country", sa.String(2)),
        sa.Column("city", sa.String(100)),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        *_timestamps(),
    )
    op.create_table(
        "nodes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("location_id", sa.Uuid(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("fqdn", sa.String(255), nullable=False, unique=True),
        sa.Column("scheme", sa.String(10), nullable=False),
        sa.Column("daemon_port", sa.Integer(), nullable=False),
        sa.Column("daemon_sftp_port", sa.Integer(), nullable=False),
        sa.Column("daemon_base", sa.String(255), nullable=False),
        sa.Column("daemon_token_id", sa.String(16), nullable=False, unique=True),
        sa.Column("daemon_token", sa.String(64), nullable=False),
        sa.Column("memory_total", sa.Integer(), nullable=False),
        sa.Column("memory_overalloc", sa.Integer(), nullable=False),
        sa.Column("memory_allocated", sa.Integer(), nullable=False),
        sa.Column("disk_total", sa.Integer(), nullable=False),
        sa.Column("disk_overalloc", sa.Integer(), nullable=False),
        sa.Column("disk_allocated", sa.Integer(), nullable=False),
        sa.Column("cpu_total", sa.Integer(), nullable=False),
        sa.Column("cpu_allocated", sa.Integer(), nullable=False),
        sa.Column("is_online", sa.Boolean(), nullable=False),
        sa.Column("maintenance_mode", sa.Boolean(), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True)),
        sa.Column("system_info", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "memory_allocated * 100 <= memory_total * (100 + memory_overalloc)",
            name="ck_nodes_memory_capacity",
        ),
        sa.CheckConstraint(
            "disk_allocated * 100 <= disk_total * (100 + disk_overalloc)",
            name="ck_nodes_disk_capacity",
        ),
        sa.CheckConstraint("cpu_allocated <= cpu_total", name="ck_nodes_cpu_capacity"),
    )
    op.create_index("ix_nodes_location_id", "nodes", ["location_id"])

    op.create_table(
        "servers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("uuid_short", sa.String(8), nullable=False, unique=True),
        sa.Column("name", sa.String(191), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("owner_id", sa.String(64)),
        sa.Column("node_id", sa.Uuid(), sa.ForeignKey("nodes.id"), nullable=False),
        sa.Column("allocation_id", sa.Uuid()),
        sa.Column("memory_limit", sa.Integer(), nullable=False),
        sa.Column("disk_limit", sa.Integer(), nullable=False),
        sa.Column("cpu_limit", sa.Integer(), nullable=False),
        sa.Column("swap_limit", sa.Integer(), nullable=False),
        sa.Column("io_weight", sa.Integer(), nullable=False),
        sa.Column("docker_image", sa.String(255), nullable=False),
        sa.Column("startup_cmd", sa.Text(), nullable=False),
        sa.Column("environment", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("suspended", sa.Boolean(), nullable=False),
        sa.Column("suspension_reason", sa.Text()),
        sa.Column("container_id", sa.String(64)),
        sa.Column("installed_at", sa.DateTime(timezone=True)),
        sa.Column("last_started_at", sa.DateTime(timezone=True)),
        sa.Column("backup_limit", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_servers_node_id", "servers", ["node_id"])
    op.create_index("ix_servers_owner_id", "servers", ["owner_id"])

    op.create_table(
        "allocations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "node_id", sa.Uuid(), sa.ForeignKey("nodes.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("ip", sa.String(45), nullable=False),
        sa.Column("port", sa.Integer(), nullable=False),
        sa.Column("alias", sa.String(255)),
        sa.Column("notes", sa.Text()),
        sa.Column("server_id", sa.Uuid(), sa.ForeignKey("servers.id")),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("node_id", "ip", "port", name="uq_allocation_endpoint"),
    )
    op.create_index("ix_allocations_node_id", "allocations", ["node_id"])
    op.create_index("ix_allocations_server_id", "allocations", ["server_id"])

    op.create_table(
        "backups",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("server_id", sa.Uuid(), sa.ForeignKey("servers.id"), nullable=False),
        sa.Column("name", sa.String(191), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("checksum", sa.String(100)),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_backups_server_id", "backups", ["server_id"])


def downgrade() -> None:
    op.drop_table("backups")
    op.drop_table("allocations")
    op.drop_table("servers")
    op.drop_table("nodes")
    op.drop_table("locations")
