"""Products API router."""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from opentelemetry import trace
import logging

from auth import require_admin
from dependencies import get_review_engine, get_store
from domain import Caller, Product, round2, utcnow
from engines.review_engine import ReviewEngine
from errors import NotFoundError
from monitoring import product_views_counter
from repositories import Store
from schemas import ProductCreate, ProductDetailResponse, ProductResponse, ProductUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductResponse])
def get_products(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    store: Store = Depends(get_store)
):
    """
    List enabled catalog products.

    Examples:
    - GET /products?category=Books
    - GET /products?search=bluetooth
    """
    products = [p for p in store.products.list() if not p.disabled]
    if category:
        products = [p for p in products if p.category.lower() == category.lower()]
    if search:
        needle = search.lower()
        products = [
            p for p in products
            if needle in p.name.lower() or needle in (p.description or "").lower()
        ]

    span = trace.get_current_span()
    span.set_attribute("product.count", len(products))
    product_views_counter.add(1, {"view": "catalog"})

    return products


@router.get("/categories", response_model=List[str])
def get_categories(store: Store = Depends(get_store)):
    return sorted({p.category for p in store.products.list() if p.category and not p.disabled})


@router.get("/{product_id}", response_model=ProductDetailResponse)
def get_product(
    product_id: int,
    store: Store = Depends(get_store),
    reviews: ReviewEngine = Depends(get_review_engine)
):
    """Get product details with its approved-review rating summary."""
    product = store.products.get(product_id)
    if product is None or product.disabled:
        raise NotFoundError("Product not found")

    span = trace.get_current_span()
    span.set_attribute("product.id", product_id)
    product_views_counter.add(1, {"view": "detail", "category": product.category})

    return {
        **ProductResponse.model_validate(product).model_dump(),
        "average_rating": reviews.average_rating(product_id),
        "review_count": reviews.review_count(product_id),
    }


@router.post("", response_model=ProductResponse, status_code=201)
def create_product(
    request: ProductCreate,
    caller: Caller = Depends(require_admin),
    store: Store = Depends(get_store)
):
    """Add a product to the catalog (admin only)."""
    product = Product(
        name=request.name.strip(),
        description=request.description,
        price=round2(request.price),
        image=request.image,
        category=request.category,
        stock=request.stock,
        created_at=utcnow(),
    )
    with store.transaction():
        store.products.insert(product)

    logger.info("Product created", extra={
        "product_id": product.id,
        "admin_id": caller.user_id
    })
    return product


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: int,
    request: ProductUpdate,
    caller: Caller = Depends(require_admin),
    store: Store = Depends(get_store)
):
    """Partially update a product, including its stock and disabled flag (admin only)."""
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if "price" in changes:
        changes["price"] = round2(changes["price"])

    with store.transaction():
        product = store.products.get(product_id, for_update=True)
        if product is None:
            raise NotFoundError("Product not found")
        for name, value in changes.items():
            setattr(product, name, value)
        store.products.update(product)

    logger.info("Product updated", extra={
        "product_id": product_id,
        "fields": sorted(changes),
        "admin_id": caller.user_id
    })
    return product
