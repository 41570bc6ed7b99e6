from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional

from fulfillment.models.catalog import Author, Category, Product
from fulfillment.schemas.catalog import (
    AuthorCreate,
    CategoryCreate,
    ProductCreate,
    ProductUpdate,
)
from fulfillment.services.exceptions import ConstraintViolationError
from fulfillment.utils.cache import cache_service


class CatalogService:
    """
    Service class for catalog management.

    This service handles:
    - Creating authors, categories and products
    - Reading products (with caching)
    - Updating product details and price (never stock)
    - Cache invalidation
    """

    CACHE_PREFIX = "product"

    def __init__(self, db: Session):
        self.db = db

    def create_author(self, data: AuthorCreate) -> Author:
        author = Author(name=data.name)
        self.db.add(author)
        self.db.commit()
        self.db.refresh(author)
        return author

    def create_category(self, data: CategoryCreate) -> Category:
        """
        Create a category.

        Raises:
            ConstraintViolationError: If the name is already taken
        """
        category = Category(name=data.name)
        self.db.add(category)
        self._commit(f"Category '{data.name}' already exists")
        self.db.refresh(category)
        return category

    def create_product(self, data: ProductCreate) -> Product:
        """
        Create a new product with its initial stock.

        Raises:
            ConstraintViolationError: If category_id or author_id is unknown
        """
        product = Product(
            category_id=data.category_id,
            author_id=data.author_id,
            name=data.name,
            description=data.description,
            price=data.price,
            stock_quantity=data.stock_quantity,
        )
        self.db.add(product)
        self._commit("Unknown category or author for product")
        self.db.refresh(product)
        return product

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_product_cached(self, product_id: int) -> Optional[dict]:
        """
        Get product details from cache or database.
        Returns a dictionary (suitable for API response).

        Args:
            product_id: Product ID to look up

        Returns:
            Product data as dictionary or None
        """
        # Try cache first
        cached = cache_service.get(self.CACHE_PREFIX, str(product_id))
        if cached:
            return cached

        product = self.get_product(product_id)
        if not product:
            return None

        product_dict = self._to_dict(product)
        cache_service.set(self.CACHE_PREFIX, str(product_id), product_dict)
        return product_dict

    def update_product(self, product_id: int, data: ProductUpdate) -> Optional[Product]:
        """
        Update an existing product.

        Only provided fields are updated. Past order items keep the price
        they were sold at.

        Returns:
            Updated product or None if not found
        """
        product = self.get_product(product_id)

        if not product:
            return None

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if value is not None:
                setattr(product, field, value)

        self._commit("Unknown category or author for product")
        self.db.refresh(product)

        # Invalidate cache
        cache_service.delete(self.CACHE_PREFIX, str(product_id))

        return product

    def _commit(self, conflict_message: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConstraintViolationError(conflict_message) from e

    @staticmethod
    def _to_dict(product: Product) -> dict:
        return {
            "id": product.id,
            "category_id": product.category_id,
            "author_id": product.author_id,
            "name": product.name,
            "description": product.description,
            "price": str(product.price),
            "stock_quantity": product.stock_quantity,
            "created_at": str(product.created_at),
            "updated_at": str(product.updated_at),
        }
