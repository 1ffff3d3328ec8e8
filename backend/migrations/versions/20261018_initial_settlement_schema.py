"""Initial resale settlement schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("gateway_key_id", sa.String(length=128), nullable=True),
        sa.Column("gateway_key_secret", sa.String(length=255), nullable=True),
        sa.Column("referred_by_code", sa.String(length=16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_referred_by_code", "users", ["referred_by_code"], unique=False)
    op.create_index("ix_users_role_active", "users", ["role", "is_active"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("token_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_session_tokens_user_id", "session_tokens", ["user_id"], unique=False)
    op.create_index("ix_session_tokens_token_hash", "session_tokens", ["token_hash"], unique=True)
    op.create_index("ix_session_tokens_expires_at", "session_tokens", ["expires_at"], unique=False)
    op.create_index("ix_session_tokens_is_revoked", "session_tokens", ["is_revoked"], unique=False)
    op.create_index("ix_session_tokens_user_active", "session_tokens", ["user_id", "is_revoked"], unique=False)

    op.create_table(
        "seller_listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("on_hand_quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("admin_purchaser_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("on_hand_quantity >= 0", name="ck_listings_on_hand_non_negative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_seller_listings_seller_id", "seller_listings", ["seller_id"], unique=False)
    op.create_index("ix_seller_listings_status", "seller_listings", ["status"], unique=False)
    op.create_index("ix_listings_seller_status", "seller_listings", ["seller_id", "status"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("order_number", sa.String(length=32), nullable=True),
        sa.Column("total_amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("payment_status", sa.String(length=16), nullable=False),
        sa.Column("gateway_order_id", sa.String(length=64), nullable=True),
        sa.Column("gateway_payment_id", sa.String(length=64), nullable=True),
        sa.Column("gateway_signature", sa.String(length=128), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        # AdminPurchaseOrder
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("resale_price_cents", sa.Integer(), nullable=True),
        # BuyerPurchaseOrder
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("shipping_address", sa.Text(), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("order_number"),
        sa.UniqueConstraint("gateway_payment_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_orders_type", "orders", ["type"], unique=False)
    op.create_index("ix_orders_status", "orders", ["status"], unique=False)
    op.create_index("ix_orders_payment_status", "orders", ["payment_status"], unique=False)
    op.create_index("ix_orders_type_created", "orders", ["type", "created_at"], unique=False)
    op.create_index("ix_orders_gateway_order_id", "orders", ["gateway_order_id"], unique=False)
    op.create_index("ix_orders_admin_id", "orders", ["admin_id"], unique=False)
    op.create_index("ix_orders_seller_id", "orders", ["seller_id"], unique=False)
    op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"], unique=False)

    op.create_table(
        "resale_lots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("seller_listings.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("purchaser_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("sold_quantity", sa.Integer(), nullable=False),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("order_id"),
        sa.CheckConstraint("total_quantity >= 1", name="ck_lots_total_positive"),
        sa.CheckConstraint(
            "sold_quantity >= 0 AND sold_quantity <= total_quantity",
            name="ck_lots_sold_within_total",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_resale_lots_listing_id", "resale_lots", ["listing_id"], unique=False)
    op.create_index("ix_resale_lots_seller_id", "resale_lots", ["seller_id"], unique=False)
    op.create_index("ix_resale_lots_status", "resale_lots", ["status"], unique=False)
    op.create_index("ix_lots_purchaser_status", "resale_lots", ["purchaser_id", "status"], unique=False)

    op.create_table(
        "order_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("lot_id", sa.Integer(), sa.ForeignKey("resale_lots.id"), nullable=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("seller_listings.id"), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_lines_order_id", "order_lines", ["order_id"], unique=False)
    op.create_index("ix_order_lines_lot_id", "order_lines", ["lot_id"], unique=False)
    op.create_index("ix_order_lines_listing_id", "order_lines", ["listing_id"], unique=False)

    op.create_table(
        "carts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("buyer_id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "cart_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cart_id", sa.Integer(), sa.ForeignKey("carts.id"), nullable=False),
        sa.Column("lot_id", sa.Integer(), sa.ForeignKey("resale_lots.id"), nullable=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("seller_listings.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_cart_lines_quantity_positive"),
        sa.CheckConstraint(
            "(lot_id IS NOT NULL AND listing_id IS NULL) OR (lot_id IS NULL AND listing_id IS NOT NULL)",
            name="ck_cart_lines_single_target",
        ),
        sa.UniqueConstraint("cart_id", "lot_id", name="uq_cart_lines_cart_lot"),
        sa.UniqueConstraint("cart_id", "listing_id", name="uq_cart_lines_cart_listing"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cart_lines_cart_id", "cart_lines", ["cart_id"], unique=False)

    op.create_table(
        "broker_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("broker_code", sa.String(length=16), nullable=False),
        sa.Column("total_earnings_cents", sa.BigInteger(), nullable=False),
        sa.Column("total_commission_paid_cents", sa.BigInteger(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_broker_accounts_broker_code", "broker_accounts", ["broker_code"], unique=True)

    op.create_table(
        "commission_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("broker_id", sa.Integer(), sa.ForeignKey("broker_accounts.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("lot_id", sa.Integer(), sa.ForeignKey("resale_lots.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("referral_side", sa.String(length=8), nullable=False),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False),
        sa.Column("profit_cents", sa.Integer(), nullable=False),
        sa.Column("commission_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("commission_amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_commission_records_broker_id", "commission_records", ["broker_id"], unique=False)
    op.create_index("ix_commission_records_order_id", "commission_records", ["order_id"], unique=False)
    op.create_index("ix_commission_records_lot_id", "commission_records", ["lot_id"], unique=False)
    op.create_index("ix_commission_records_status", "commission_records", ["status"], unique=False)
    op.create_index("ix_commissions_broker_created", "commission_records", ["broker_id", "created_at"], unique=False)


def downgrade():
    op.drop_table("commission_records")
    op.drop_table("broker_accounts")
    op.drop_table("cart_lines")
    op.drop_table("carts")
    op.drop_table("order_lines")
    op.drop_table("resale_lots")
    op.drop_table("orders")
    op.drop_table("seller_listings")
    op.drop_table("session_tokens")
    op.drop_table("users")
