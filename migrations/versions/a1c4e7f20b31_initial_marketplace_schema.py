"""initial marketplace schema

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c4e7f20b31"
down_revision = None
branch_labels = None
depends_on = None


TABLES = (
    "webhook_events",
    "listing_unlocks",
    "topup_orders",
    "coin_topup_tiers",
    "coin_exchange_config",
    "coin_transactions",
    "listings",
    "users",
)


def _create_indexes(insp, table_name: str, indexes) -> None:
    existing = {str(idx.get("name") or "") for idx in insp.get_indexes(table_name)}
    for name, columns, unique in indexes:
        if name not in existing:
            op.create_index(name, table_name, columns, unique=unique)


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
            sa.Column("coin_balance", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("zalo", sa.String(length=32), nullable=True),
            sa.Column("lock_status", sa.String(length=8), nullable=False, server_default="none"),
            sa.Column("lock_updated_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("coin_balance >= 0", name="ck_users_coin_balance_non_negative"),
        )
    _create_indexes(insp, "users", (("ix_users_email", ["email"], True),))

    if not insp.has_table("listings"):
        op.create_table(
            "listings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("space_type", sa.JSON(), nullable=False),
            sa.Column("location_type", sa.String(length=64), nullable=True),
            sa.Column("suitable_for", sa.JSON(), nullable=False),
            sa.Column("not_suitable_for", sa.JSON(), nullable=False),
            sa.Column("amenities", sa.JSON(), nullable=False),
            sa.Column("nearby_features", sa.JSON(), nullable=False),
            sa.Column("time_slots", sa.JSON(), nullable=False),
            sa.Column("images", sa.JSON(), nullable=False),
            sa.Column("price_min", sa.Integer(), nullable=True),
            sa.Column("price_max", sa.Integer(), nullable=True),
            sa.Column("address_old_admin", sa.String(length=300), nullable=True),
            sa.Column("province_old", sa.String(length=120), nullable=True),
            sa.Column("district_old", sa.String(length=120), nullable=True),
            sa.Column("address_new_admin", sa.String(length=300), nullable=True),
            sa.Column("province_new", sa.String(length=120), nullable=True),
            sa.Column("ward_new", sa.String(length=120), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        insp,
        "listings",
        (
            ("ix_listings_owner_id", ["owner_id"], False),
            ("ix_listings_location_type", ["location_type"], False),
            ("ix_listings_province_old", ["province_old"], False),
            ("ix_listings_province_new", ["province_new"], False),
            ("ix_listings_status", ["status"], False),
        ),
    )

    if not insp.has_table("coin_transactions"):
        op.create_table(
            "coin_transactions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=24), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("balance_after", sa.Integer(), nullable=False),
            sa.Column("reference", sa.String(length=128), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("reference", name="uq_coin_transactions_reference"),
        )
    _create_indexes(
        insp,
        "coin_transactions",
        (
            ("ix_coin_transactions_user_id", ["user_id"], False),
            ("ix_coin_transactions_created_at", ["created_at"], False),
        ),
    )

    if not insp.has_table("coin_exchange_config"):
        op.create_table(
            "coin_exchange_config",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("coins_per_1000", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("min_topup", sa.Integer(), nullable=False, server_default="10000"),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("updated_by", sa.Integer(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if not insp.has_table("coin_topup_tiers"):
        op.create_table(
            "coin_topup_tiers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("label", sa.String(length=80), nullable=False),
            sa.Column("min_amount", sa.Integer(), nullable=False),
            sa.Column("coins_granted", sa.Integer(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(insp, "coin_topup_tiers", (("ix_coin_topup_tiers_min_amount", ["min_amount"], False),))

    if not insp.has_table("topup_orders"):
        op.create_table(
            "topup_orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_ref", sa.String(length=64), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("gateway_status", sa.String(length=32), nullable=True),
            sa.Column("coins_credited", sa.Integer(), nullable=True),
            sa.Column("settled_source", sa.String(length=24), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("settled_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        insp,
        "topup_orders",
        (
            ("ix_topup_orders_order_ref", ["order_ref"], True),
            ("ix_topup_orders_user_id", ["user_id"], False),
            ("ix_topup_orders_status", ["status"], False),
        ),
    )

    if not insp.has_table("listing_unlocks"):
        op.create_table(
            "listing_unlocks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("listing_id", sa.Integer(), nullable=False),
            sa.Column("coins_spent", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["listing_id"], ["listings.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "listing_id", name="uq_listing_unlocks_user_listing"),
        )
    _create_indexes(
        insp,
        "listing_unlocks",
        (
            ("ix_listing_unlocks_user_id", ["user_id"], False),
            ("ix_listing_unlocks_listing_id", ["listing_id"], False),
        ),
    )

    if not insp.has_table("webhook_events"):
        op.create_table(
            "webhook_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("provider", sa.String(length=32), nullable=False),
            sa.Column("event_id", sa.String(length=128), nullable=False),
            sa.Column("reference", sa.String(length=128), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("processed_at", sa.DateTime(), nullable=True),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("payload_hash", sa.String(length=128), nullable=True),
            sa.Column("payload_json", sa.Text(), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        insp,
        "webhook_events",
        (
            ("ix_webhook_events_event_id", ["event_id"], False),
            ("ix_webhook_events_reference", ["reference"], False),
        ),
    )


def downgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)
    for table_name in TABLES:
        if insp.has_table(table_name):
            op.drop_table(table_name)
