"""Product catalog service."""
import logging
import math
import time
from typing import List, Optional, Tuple
from sqlalchemy import String, asc, cast, desc, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import DuplicateSkuError, ProductMissingError, ValidationError
from models import Product, ProductCategory
from schemas import Pagination, ProductCreate, ProductFilters, ProductUpdate
from services.pricing import random_base36

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": Product.created_at,
    "price": Product.price,
    "rating": Product.rating,
    "name": Product.name,
}


def generate_sku() -> str:
    return f"TS{int(time.time() * 1000)}{random_base36(5)}"


class ProductService:
    """Catalog queries, admin maintenance and stock adjustment."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def get_product(self, db: Session, product_id: int) -> Optional[Product]:
        """Look up a product by ID, active or not."""
        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            product = db.get(Product, product_id)
            db_span.set_attribute("db.rows_returned", 1 if product else 0)
            return product

    def get_active_product(self, db: Session, product_id: int) -> Product:
        """
        Look up a product visible to shoppers.

        Raises:
            ProductMissingError: If the product does not exist or is inactive
        """
        product = self.get_product(db, product_id)
        if product is None:
            raise ProductMissingError()
        if not product.is_active:
            raise ProductMissingError("Product not available")
        return product

    def list_products(self, db: Session, filters: ProductFilters) -> Tuple[List[Product], Pagination]:
        """
        Filter, sort and paginate active products.

        Args:
            db: Database session
            filters: Catalog query parameters

        Returns:
            Page of products and pagination metadata
        """
        query = db.query(Product).filter(Product.is_active.is_(True))

        if filters.category and filters.category != "all":
            try:
                category = ProductCategory(filters.category)
            except ValueError:
                raise ValidationError(f"Unknown category {filters.category}")
            query = query.filter(Product.category == category)
        if filters.brand and filters.brand != "all":
            query = query.filter(Product.brand == filters.brand)
        if filters.min_price is not None:
            query = query.filter(Product.price >= filters.min_price)
        if filters.max_price is not None:
            query = query.filter(Product.price <= filters.max_price)
        if filters.min_rating is not None:
            query = query.filter(Product.rating >= filters.min_rating)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                cast(Product.category, String).ilike(pattern),
                Product.brand.ilike(pattern),
                cast(Product.tags, String).ilike(pattern),
            ))

        total = query.count()

        column = SORT_COLUMNS[filters.sort_by]
        ordering = asc(column) if filters.sort_order == "asc" else desc(column)
        products = (
            query.order_by(ordering, Product.id)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
            .all()
        )

        total_pages = math.ceil(total / filters.limit)
        pagination = Pagination(
            current_page=filters.page,
            total_pages=total_pages,
            total_products=total,
            has_next=filters.page < total_pages,
            has_prev=filters.page > 1,
        )
        return products, pagination

    def create_product(self, db: Session, data: ProductCreate) -> Product:
        """
        Create a catalog product.

        Raises:
            DuplicateSkuError: If the SKU is already in use
        """
        values = data.model_dump()
        if not values.get("sku"):
            values["sku"] = generate_sku()

        product = Product(**values)
        db.add(product)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateSkuError(values["sku"])
        db.refresh(product)

        logger.info("Product created", extra={
            "product_id": product.id,
            "sku": product.sku,
            "category": product.category.value
        })
        return product

    def update_product(self, db: Session, product_id: int, data: ProductUpdate) -> Product:
        """Apply a partial update to a product."""
        product = self.get_product(db, product_id)
        if product is None:
            raise ProductMissingError()

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(product, field, value)
        db.commit()
        db.refresh(product)

        logger.info("Product updated", extra={
            "product_id": product.id,
            "fields": sorted(changes)
        })
        return product

    def deactivate_product(self, db: Session, product_id: int) -> Product:
        """Soft delete: hide the product from the catalog and from ordering."""
        product = self.get_product(db, product_id)
        if product is None:
            raise ProductMissingError()

        product.is_active = False
        db.commit()

        logger.info("Product deactivated", extra={"product_id": product.id})
        return product

    def list_categories(self) -> List[str]:
        return [category.value for category in ProductCategory]

    def list_brands(self, db: Session) -> List[str]:
        rows = (
            db.query(Product.brand)
            .filter(Product.is_active.is_(True))
            .distinct()
            .order_by(Product.brand)
            .all()
        )
        return [row.brand for row in rows]

    def decrement_stock(self, db: Session, product_id: int, quantity: int) -> bool:
        """
        Atomically take stock for an order line.

        The UPDATE only matches while the product is active and still has at
        least ``quantity`` units, so concurrent orders can never drive stock
        below zero. The caller owns the transaction.

        Returns:
            True if stock was taken, False if not enough was left
        """
        with self.tracer.start_as_current_span("db.query.decrement_product_stock") as update_span:
            update_span.set_attribute("db.operation", "UPDATE")
            update_span.set_attribute("db.table", "products")
            update_span.set_attribute("product.id", product_id)
            update_span.set_attribute("quantity", quantity)

            result = db.execute(
                update(Product)
                .where(
                    Product.id == product_id,
                    Product.is_active.is_(True),
                    Product.stock >= quantity,
                )
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            update_span.set_attribute("db.rows_affected", result.rowcount)
            self._expire_stock(db, product_id)
            return result.rowcount == 1

    def increment_stock(self, db: Session, product_id: int, quantity: int) -> bool:
        """
        Return stock to a product. The caller owns the transaction.

        Returns:
            False if the product no longer exists
        """
        with self.tracer.start_as_current_span("db.query.increment_product_stock") as update_span:
            update_span.set_attribute("db.operation", "UPDATE")
            update_span.set_attribute("db.table", "products")
            update_span.set_attribute("product.id", product_id)
            update_span.set_attribute("quantity", quantity)

            result = db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock=Product.stock + quantity)
                .execution_options(synchronize_session=False)
            )
            update_span.set_attribute("db.rows_affected", result.rowcount)
            self._expire_stock(db, product_id)
            return result.rowcount == 1

    def _expire_stock(self, db: Session, product_id: int) -> None:
        # Loaded instances would otherwise keep the pre-UPDATE stock value
        product = db.identity_map.get(db.identity_key(Product, product_id))
        if product is not None:
            db.expire(product, ["stock"])
