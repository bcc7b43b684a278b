"""Products API router."""
from decimal import Decimal
from typing import Literal, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from opentelemetry import trace

from auth import require_admin
from database import get_db
from dependencies import get_product_service
from errors import StoreError, http_error
from models import User
from monitoring import product_detail_views_counter, product_views_counter
from schemas import (
    BrandsResponse,
    CategoriesResponse,
    MessageResponse,
    ProductCreate,
    ProductFilters,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from services.product_service import ProductService

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    category: Optional[str] = Query(None, description="Category name, or 'all'"),
    brand: Optional[str] = Query(None, description="Brand name, or 'all'"),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    min_rating: Optional[Decimal] = Query(None, ge=0, le=5),
    search: Optional[str] = Query(None, description="Matches name, description, category, brand and tags"),
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    sort_by: Literal["created_at", "price", "rating", "name"] = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """
    Browse the catalog.

    Only active products are listed. Examples:
    - GET /api/products?category=Laptops&sort_by=price&sort_order=asc
    - GET /api/products?search=wireless&page=2
    """
    filters = ProductFilters(
        category=category,
        brand=brand,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order
    )
    try:
        products, pagination = product_service.list_products(db, filters)
    except StoreError as e:
        raise http_error(e)

    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))
    span.set_attribute("product.category", category or "all")
    span.set_attribute("endpoint.type", "product_catalog")

    product_views_counter.add(1, {"category": category or "all"})

    return ProductListResponse(products=products, pagination=pagination)


@router.get("/meta/categories", response_model=CategoriesResponse)
async def list_categories(product_service: ProductService = Depends(get_product_service)):
    """List product categories."""
    return CategoriesResponse(categories=product_service.list_categories())


@router.get("/meta/brands", response_model=BrandsResponse)
async def list_brands(
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """List brands that have at least one active product."""
    return BrandsResponse(brands=product_service.list_brands(db))


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    """Get product details. Inactive products are reported as not available."""
    try:
        product = product_service.get_active_product(db, product_id)
    except StoreError as e:
        raise http_error(e)

    span = trace.get_current_span()
    span.set_attribute("product.id", product_id)
    span.set_attribute("product.category", product.category.value)

    product_detail_views_counter.add(1, {
        "product_id": str(product_id),
        "category": product.category.value
    })

    return product


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    """Create a product - admin only."""
    try:
        return product_service.create_product(db, request)
    except StoreError as e:
        raise http_error(e)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    request: ProductUpdate,
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    """Update a product - admin only. Omitted fields are left unchanged."""
    try:
        return product_service.update_product(db, product_id, request)
    except StoreError as e:
        raise http_error(e)


@router.delete("/{product_id}", response_model=MessageResponse)
async def delete_product(
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    """Deactivate a product - admin only. Past orders keep their snapshots."""
    try:
        product_service.deactivate_product(db, product_id)
    except StoreError as e:
        raise http_error(e)

    return MessageResponse(message="Product deleted successfully")
