"""Tests for catalog API endpoints."""


def _category(client, name="Books"):
    return client.post("/api/v1/products/categories", json={"name": name}).json()["id"]


def test_create_product(client):
    """Test creating a new product."""
    category_id = _category(client)
    author_id = client.post("/api/v1/products/authors", json={"name": "Terry Pratchett"}).json()["id"]

    response = client.post(
        "/api/v1/products/",
        json={
            "name": "Mort",
            "description": "Death takes an apprentice",
            "price": "9.99",
            "stock_quantity": 10,
            "category_id": category_id,
            "author_id": author_id,
        }
    )

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Mort"
    assert data["price"] == "9.99"
    assert data["stock_quantity"] == 10
    assert data["author_id"] == author_id
    assert "id" in data
    assert "created_at" in data


def test_create_product_invalid_price(client):
    """Test creating product with invalid price fails."""
    response = client.post(
        "/api/v1/products/",
        json={"name": "Mort", "price": "-10.00", "stock_quantity": 10, "category_id": _category(client)}
    )

    assert response.status_code == 422  # Validation error


def test_create_product_invalid_stock(client):
    """Test creating product with negative stock fails."""
    response = client.post(
        "/api/v1/products/",
        json={"name": "Mort", "price": "10.00", "stock_quantity": -5, "category_id": _category(client)}
    )

    assert response.status_code == 422


def test_create_product_unknown_category(client):
    response = client.post(
        "/api/v1/products/",
        json={"name": "Mort", "price": "10.00", "stock_quantity": 1, "category_id": 999}
    )

    assert response.status_code == 409


def test_duplicate_category_is_rejected(client):
    _category(client, "Books")
    response = client.post("/api/v1/products/categories", json={"name": "Books"})

    assert response.status_code == 409


def test_get_product(client, fake_cache):
    """Test getting a product by ID fills the cache."""
    product_id = client.post(
        "/api/v1/products/",
        json={"name": "Mort", "price": "50.00", "stock_quantity": 5, "category_id": _category(client)}
    ).json()["id"]

    response = client.get(f"/api/v1/products/{product_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == product_id
    assert data["name"] == "Mort"
    fake_cache.setex.assert_called_once()
    assert fake_cache.setex.call_args.args[0] == f"product:{product_id}"


def test_get_product_not_found(client):
    """Test getting non-existent product returns 404."""
    response = client.get("/api/v1/products/9999")

    assert response.status_code == 404


def test_update_product(client):
    """Test updating a product keeps its stock."""
    product_id = client.post(
        "/api/v1/products/",
        json={"name": "Original Name", "price": "50.00", "stock_quantity": 10, "category_id": _category(client)}
    ).json()["id"]

    response = client.patch(
        f"/api/v1/products/{product_id}",
        json={"name": "Updated Name", "price": "75.00", "stock_quantity": 0}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Updated Name"
    assert data["price"] == "75.00"
    assert data["stock_quantity"] == 10  # Stock is owned by the inventory ledger
