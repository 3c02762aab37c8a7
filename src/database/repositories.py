# src/database/repositories.py
"""SQL for products, orders, users and addresses.

Status changes are single conditional UPDATEs guarded by the status the
caller read; they return ``None`` when no row matched so the caller can tell
that a concurrent transition got there first.
"""
from typing import Iterable, List, Optional
from uuid import UUID
from pydantic import BaseModel
from ..models.order import MANUAL_PAYMENT_ID, Order, OrderStatus
from ..models.product import BankAccount, Product, ProductStatus
from ..models.user import Address, User

def _json(model: Optional[BaseModel]):
    return model.model_dump(mode="json") if model is not None else None

class ProductRepository:
    def __init__(self, db):
        self.db = db

    @staticmethod
    def _to_product(row) -> Optional[Product]:
        return Product.model_validate(dict(row)) if row else None

    async def insert(self, product: Product) -> Product:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO products (
                    product_id, seller_id, article, brand, category, gender,
                    size, age, wear_count, damage, images, ai_analysis,
                    status, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                RETURNING *
            """,
                product.product_id,
                product.seller_id,
                product.article,
                product.brand,
                product.category.value,
                product.gender.value if product.gender else None,
                product.size,
                product.age.value if product.age else None,
                product.wear_count,
                product.damage,
                product.images,
                _json(product.ai_analysis),
                product.status.value,
                product.created_at
            )
            return self._to_product(row)

    async def get(self, product_id: UUID) -> Optional[Product]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM products WHERE product_id = $1", product_id
            )
            return self._to_product(row)

    async def save_transition(self, product: Product, expected: ProductStatus) -> Optional[Product]:
        """Write the new snapshot only if the stored status is still ``expected``"""
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE products
                SET status = $3,
                    admin_review = $4,
                    pickup_details = $5,
                    payment_details = $6,
                    listed_product = $7,
                    updated_at = $8
                WHERE product_id = $1 AND status = $2
                RETURNING *
            """,
                product.product_id,
                expected.value,
                product.status.value,
                _json(product.admin_review),
                _json(product.pickup_details),
                _json(product.payment_details),
                _json(product.listed_product),
                product.updated_at
            )
            return self._to_product(row)

    async def list_by_status(self, statuses: Iterable[ProductStatus],
                             newest_first_by: str = "created_at") -> List[Product]:
        if newest_first_by not in ("created_at", "updated_at"):
            raise ValueError(f"Unsupported ordering column: {newest_first_by}")
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch(f"""
                SELECT * FROM products
                WHERE status = ANY($1::varchar[])
                ORDER BY COALESCE({newest_first_by}, created_at) DESC
            """, [status.value for status in statuses])
            return [self._to_product(row) for row in rows]

    async def list_by_seller(self, seller_id: int) -> List[Product]:
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM products
                WHERE seller_id = $1
                ORDER BY created_at DESC
            """, seller_id)
            return [self._to_product(row) for row in rows]

class OrderRepository:
    def __init__(self, db):
        self.db = db

    @staticmethod
    def _to_order(row) -> Optional[Order]:
        return Order.model_validate(dict(row)) if row else None

    async def insert(self, order: Order) -> Order:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO orders (
                    order_id, user_id, address, cart, amount, status,
                    razorpay_order_id, estimated_delivery_date, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING *
            """,
                order.order_id,
                order.user_id,
                _json(order.address),
                [item.model_dump(mode="json") for item in order.cart],
                order.amount,
                order.status.value,
                order.razorpay_order_id,
                order.estimated_delivery_date,
                order.created_at
            )
            return self._to_order(row)

    async def get(self, order_id: UUID) -> Optional[Order]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM orders WHERE order_id = $1", order_id)
            return self._to_order(row)

    async def get_by_gateway_ref(self, razorpay_order_id: str) -> Optional[Order]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM orders WHERE razorpay_order_id = $1", razorpay_order_id
            )
            return self._to_order(row)

    async def mark_paid(self, razorpay_order_id: str, payment_id: str) -> Optional[Order]:
        """Paid from any status; a recorded gateway payment id is kept, a manual one replaced"""
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE orders
                SET status = $2,
                    razorpay_payment_id = CASE
                        WHEN razorpay_payment_id IS NULL OR razorpay_payment_id = $4 THEN $3
                        ELSE razorpay_payment_id
                    END,
                    updated_at = CURRENT_TIMESTAMP
                WHERE razorpay_order_id = $1
                RETURNING *
            """, razorpay_order_id, OrderStatus.PAID.value, payment_id, MANUAL_PAYMENT_ID)
            return self._to_order(row)

    async def mark_failed(self, razorpay_order_id: str) -> Optional[Order]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE orders
                SET status = $2, updated_at = CURRENT_TIMESTAMP
                WHERE razorpay_order_id = $1 AND status = $3
                RETURNING *
            """, razorpay_order_id, OrderStatus.FAILED.value, OrderStatus.CREATED.value)
            return self._to_order(row)

    async def complete_manually(self, order_id: UUID) -> Optional[Order]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE orders
                SET status = $2,
                    razorpay_payment_id = $3,
                    updated_at = CURRENT_TIMESTAMP
                WHERE order_id = $1 AND status = ANY($4::varchar[])
                RETURNING *
            """,
                order_id,
                OrderStatus.PAID.value,
                MANUAL_PAYMENT_ID,
                [OrderStatus.CREATED.value, OrderStatus.FAILED.value]
            )
            return self._to_order(row)

    async def list_by_user(self, user_id: int, limit: int = 10) -> List[Order]:
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM orders
                WHERE user_id = $1
                ORDER BY created_at DESC
                LIMIT $2
            """, user_id, limit)
            return [self._to_order(row) for row in rows]

class UserRepository:
    def __init__(self, db):
        self.db = db

    async def upsert(self, user: User) -> User:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO users (user_id, username, first_name, last_name)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (user_id)
                DO UPDATE SET
                    username = EXCLUDED.username,
                    first_name = EXCLUDED.first_name,
                    last_name = EXCLUDED.last_name,
                    updated_at = CURRENT_TIMESTAMP
                RETURNING *
            """, user.user_id, user.username, user.first_name, user.last_name)
            return User.model_validate(dict(row))

    async def get(self, user_id: int) -> Optional[User]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE user_id = $1", user_id)
            return User.model_validate(dict(row)) if row else None

    async def set_payment_account(self, user_id: int,
                                  account: Optional[BankAccount]) -> Optional[User]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE users
                SET payment_account = $2, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = $1
                RETURNING *
            """, user_id, _json(account))
            return User.model_validate(dict(row)) if row else None

    async def list_addresses(self, user_id: int) -> List[Address]:
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM addresses
                WHERE user_id = $1
                ORDER BY is_default DESC, created_at
            """, user_id)
            return [Address.model_validate(dict(row)) for row in rows]

    async def get_address(self, user_id: int, address_id: UUID) -> Optional[Address]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM addresses WHERE user_id = $1 AND address_id = $2",
                user_id, address_id
            )
            return Address.model_validate(dict(row)) if row else None

    async def get_default_address(self, user_id: int) -> Optional[Address]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM addresses WHERE user_id = $1 AND is_default",
                user_id
            )
            return Address.model_validate(dict(row)) if row else None

    async def insert_address(self, address: Address) -> Address:
        """Insert; a user's first address, or one flagged default, becomes the only default"""
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                has_any = await conn.fetchval(
                    "SELECT EXISTS(SELECT 1 FROM addresses WHERE user_id = $1)",
                    address.user_id
                )
                is_default = address.is_default or not has_any
                if is_default:
                    await conn.execute(
                        "UPDATE addresses SET is_default = FALSE WHERE user_id = $1 AND is_default",
                        address.user_id
                    )
                row = await conn.fetchrow("""
                    INSERT INTO addresses (
                        address_id, user_id, name, phone, pincode, house, area, is_default
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING *
                """,
                    address.address_id, address.user_id, address.name, address.phone,
                    address.pincode, address.house, address.area, is_default
                )
                return Address.model_validate(dict(row))

    async def update_address(self, address: Address) -> Optional[Address]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE addresses
                SET name = $3, phone = $4, pincode = $5, house = $6, area = $7,
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = $1 AND address_id = $2
                RETURNING *
            """,
                address.user_id, address.address_id, address.name, address.phone,
                address.pincode, address.house, address.area
            )
            return Address.model_validate(dict(row)) if row else None

    async def delete_address(self, user_id: int, address_id: UUID) -> bool:
        async with self.db.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM addresses WHERE user_id = $1 AND address_id = $2",
                user_id, address_id
            )
            return result == "DELETE 1"

    async def set_default_address(self, user_id: int, address_id: UUID) -> Optional[Address]:
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval(
                    "SELECT EXISTS(SELECT 1 FROM addresses WHERE user_id = $1 AND address_id = $2)",
                    user_id, address_id
                )
                if not exists:
                    return None
                await conn.execute(
                    "UPDATE addresses SET is_default = FALSE WHERE user_id = $1 AND is_default",
                    user_id
                )
                row = await conn.fetchrow("""
                    UPDATE addresses
                    SET is_default = TRUE, updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = $1 AND address_id = $2
                    RETURNING *
                """, user_id, address_id)
                return Address.model_validate(dict(row))
