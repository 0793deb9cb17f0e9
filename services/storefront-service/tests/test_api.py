"""
Tests for the REST API.
"""
import pytest
from fastapi.testclient import TestClient

from conftest import add_product, add_user, auth_header
from dependencies import get_store
from main import app


@pytest.fixture
def store(memory_store):
    """API tests run against the in-memory store only."""
    return memory_store


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headphones(store):
    return add_product(store, "Wireless Headphones", "79.99", stock=5)


@pytest.fixture
def plant_pots(store):
    return add_product(store, "Plant Pot Set", "29.99", stock=10, category="Home")


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAuthApi:
    """Tests for registration and login."""

    def test_register_then_login(self, client):
        response = client.post("/auth/register", json={
            "email": "New.User@Example.com",
            "password": "hunter22",
            "first_name": "New",
            "last_name": "User",
        })
        assert response.status_code == 201
        assert response.json()["user"]["email"] == "new.user@example.com"
        assert response.json()["user"]["role"] == "user"

        response = client.post("/auth/login", json={"email": "new.user@example.com", "password": "hunter22"})
        assert response.status_code == 200
        token = response.json()["token"]

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["first_name"] == "New"

    def test_duplicate_registration_conflicts(self, client, shopper):
        response = client.post("/auth/register", json={
            "email": shopper.email,
            "password": "hunter22",
            "first_name": "John",
            "last_name": "Doe",
        })
        assert response.status_code == 409

    def test_wrong_password(self, client, shopper):
        response = client.post("/auth/login", json={"email": shopper.email, "password": "wrong"})
        assert response.status_code == 401

    def test_unknown_email(self, client):
        response = client.post("/auth/login", json={"email": "ghost@example.com", "password": "secret123"})
        assert response.status_code == 401

    @pytest.mark.parametrize("header", [None, "Token abc", "Bearer not-a-jwt"])
    def test_protected_route_rejects_bad_credentials(self, client, header):
        headers = {"Authorization": header} if header else {}
        assert client.get("/auth/me", headers=headers).status_code == 401


class TestProductsApi:
    """Tests for the catalog endpoints."""

    def test_list_hides_disabled_products(self, client, store, headphones):
        add_product(store, "Retired Gadget", "9.99", disabled=True)
        names = [p["name"] for p in client.get("/products").json()]
        assert names == ["Wireless Headphones"]

    def test_filters(self, client, headphones, plant_pots):
        assert [p["name"] for p in client.get("/products", params={"category": "home"}).json()] == ["Plant Pot Set"]
        assert [p["name"] for p in client.get("/products", params={"search": "wireless"}).json()] == ["Wireless Headphones"]
        assert client.get("/products/categories").json() == ["Electronics", "Home"]

    def test_detail_includes_rating_summary(self, client, headphones):
        body = client.get(f"/products/{headphones.id}").json()
        assert body["price"] == 79.99
        assert body["average_rating"] == 0
        assert body["review_count"] == 0

    def test_disabled_product_detail_is_not_found(self, client, store):
        product = add_product(store, "Retired Gadget", "9.99", disabled=True)
        assert client.get(f"/products/{product.id}").status_code == 404

    def test_admin_creates_and_updates_product(self, client, admin):
        response = client.post("/products", headers=auth_header(admin), json={
            "name": "Smart Watch Pro",
            "price": "199.99",
            "category": "Electronics",
            "stock": 8,
        })
        assert response.status_code == 201
        product_id = response.json()["id"]

        response = client.put(f"/products/{product_id}", headers=auth_header(admin), json={"stock": 3, "disabled": True})
        assert response.status_code == 200
        assert response.json()["stock"] == 3
        assert response.json()["disabled"] is True
        assert response.json()["name"] == "Smart Watch Pro"

    def test_shopper_cannot_create_product(self, client, shopper):
        response = client.post("/products", headers=auth_header(shopper), json={"name": "X", "price": "1.00"})
        assert response.status_code == 403


class TestOrdersApi:
    """Tests for checkout and order management."""

    @pytest.fixture
    def order(self, client, shopper, headphones, plant_pots):
        response = client.post("/orders", headers=auth_header(shopper), json={
            "items": [
                {"product_id": headphones.id, "quantity": 1, "price_at_purchase": 79.99},
                {"product_id": plant_pots.id, "quantity": 2, "price_at_purchase": 29.99},
            ],
            "shipping_address": "742 Evergreen Terrace, Springfield",
        })
        assert response.status_code == 201
        return response.json()

    def test_create_order(self, order, store, headphones):
        assert order["subtotal"] == 139.97
        assert order["tax"] == 11.55
        assert order["fees"] == 4.99
        assert order["total"] == 156.51
        assert order["status"] == "pending"
        assert order["order_number"] == f"ORD-{10000 + order['id']}"
        assert len(order["items"]) == 2
        assert store.products.get(headphones.id).stock == 4

    def test_insufficient_stock_conflicts(self, client, store, shopper, headphones):
        response = client.post("/orders", headers=auth_header(shopper), json={
            "items": [{"product_id": headphones.id, "quantity": 6, "price_at_purchase": 79.99}],
            "shipping_address": "Somewhere",
        })
        assert response.status_code == 409
        assert "detail" in response.json()
        assert store.orders.list() == []

    def test_empty_order_is_rejected(self, client, shopper):
        response = client.post("/orders", headers=auth_header(shopper), json={
            "items": [],
            "shipping_address": "Somewhere",
        })
        assert response.status_code == 400

    def test_orders_are_scoped(self, client, order, shopper, other_shopper, admin):
        assert [o["id"] for o in client.get("/orders", headers=auth_header(shopper)).json()] == [order["id"]]
        assert client.get("/orders", headers=auth_header(other_shopper)).json() == []
        assert len(client.get("/orders", headers=auth_header(admin)).json()) == 1

    def test_other_users_order_is_forbidden(self, client, order, other_shopper):
        response = client.get(f"/orders/{order['id']}", headers=auth_header(other_shopper))
        assert response.status_code == 403

    def test_status_updates(self, client, order, shopper, admin):
        url = f"/orders/{order['id']}/status"
        assert client.put(url, headers=auth_header(admin), json={"status": "bogus"}).status_code == 400
        assert client.put(url, headers=auth_header(shopper), json={"status": "processing"}).status_code == 403

        response = client.put(url, headers=auth_header(admin), json={"status": "processing"})
        assert response.status_code == 200
        assert response.json()["status"] == "processing"

        assert client.put(url, headers=auth_header(admin), json={"status": "pending"}).status_code == 409

    def test_admin_search(self, client, order, shopper, admin):
        found = client.get("/orders", headers=auth_header(admin), params={"search": order["order_number"]})
        assert [o["id"] for o in found.json()] == [order["id"]]
        assert len(found.json()[0]["items"]) == 2
        assert client.get("/orders", headers=auth_header(admin), params={"search": "nowhere"}).json() == []

        response = client.get("/orders", headers=auth_header(shopper), params={"search": "springfield"})
        assert response.status_code == 403


class TestAuctionsApi:
    """Tests for auctions and bidding."""

    @pytest.fixture
    def auction(self, client, other_shopper):
        response = client.post("/auctions", headers=auth_header(other_shopper), json={
            "title": "Vintage Mechanical Keyboard",
            "description": "Clicky",
            "category": "Electronics",
            "starting_price": "45.00",
            "duration_hours": 48,
        })
        assert response.status_code == 201
        return response.json()

    def test_create_auction(self, auction):
        assert auction["status"] == "active"
        assert auction["current_price"] == 45.0
        assert auction["seller_name"] == "Jane S."

    @pytest.mark.parametrize("hours", [0, 1e12, 721])
    def test_out_of_range_duration_is_rejected(self, client, shopper, hours):
        response = client.post("/auctions", headers=auth_header(shopper), json={
            "title": "Lamp",
            "starting_price": "10.00",
            "duration_hours": hours,
        })
        assert response.status_code == 400

    def test_my_bid(self, client, auction, shopper, admin):
        url = f"/auctions/{auction['id']}"
        client.post(f"{url}/bids", headers=auth_header(shopper), json={"amount": "50.00"})
        assert client.get(f"{url}/my-bid", headers=auth_header(shopper)).json() == {
            "highest_bid": 50.0,
            "is_highest_bidder": True,
        }

        client.post(f"{url}/bids", headers=auth_header(admin), json={"amount": "55.00"})
        assert client.get(f"{url}/my-bid", headers=auth_header(shopper)).json()["is_highest_bidder"] is False
        assert client.get("/auctions/9999/my-bid", headers=auth_header(shopper)).status_code == 404

    def test_bidding_rules(self, client, auction, shopper, other_shopper):
        url = f"/auctions/{auction['id']}/bids"
        assert client.post(url, headers=auth_header(shopper), json={"amount": "45.00"}).status_code == 400
        assert client.post(url, headers=auth_header(other_shopper), json={"amount": "100.00"}).status_code == 403

        response = client.post(url, headers=auth_header(shopper), json={"amount": "46.00"})
        assert response.status_code == 201
        assert response.json()["bidder_name"] == "John D."

        history = client.get(url).json()
        assert [b["amount"] for b in history] == [46.0]
        assert client.get(f"/auctions/{auction['id']}").json()["bid_count"] == 1

    def test_bid_on_unknown_auction(self, client, shopper):
        response = client.post("/auctions/9999/bids", headers=auth_header(shopper), json={"amount": "10.00"})
        assert response.status_code == 404

    def test_my_auctions(self, client, auction, shopper, other_shopper):
        client.post(f"/auctions/{auction['id']}/bids", headers=auth_header(shopper), json={"amount": "50.00"})

        mine = client.get("/auctions/mine", headers=auth_header(other_shopper)).json()
        assert [a["id"] for a in mine["selling"]] == [auction["id"]]
        assert mine["bidding"] == []

        mine = client.get("/auctions/mine", headers=auth_header(shopper)).json()
        assert [a["id"] for a in mine["bidding"]] == [auction["id"]]

    def test_cancel(self, client, auction, shopper, other_shopper):
        url = f"/auctions/{auction['id']}/cancel"
        assert client.post(url, headers=auth_header(shopper)).status_code == 403
        response = client.post(url, headers=auth_header(other_shopper))
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert client.post(url, headers=auth_header(other_shopper)).status_code == 409

        bid = client.post(f"/auctions/{auction['id']}/bids", headers=auth_header(shopper), json={"amount": "99.00"})
        assert bid.status_code == 409

    def test_listing_and_search(self, client, auction, admin, other_shopper):
        client.post(f"/auctions/{auction['id']}/cancel", headers=auth_header(other_shopper))

        assert client.get("/auctions").json() == []
        assert [a["id"] for a in client.get("/auctions", params={"search": "keyboard"}).json()] == [auction["id"]]
        assert client.get("/auctions/categories").json() == ["Electronics"]
        assert len(client.get("/auctions/all", headers=auth_header(admin)).json()) == 1
        assert client.get("/auctions/all", headers=auth_header(other_shopper)).status_code == 403


class TestReviewsApi:
    """Tests for reviews and moderation."""

    def test_submit_and_summary(self, client, headphones, shopper):
        url = f"/products/{headphones.id}/reviews"
        response = client.post(url, headers=auth_header(shopper), json={"rating": 5, "title": "Great", "comment": "Love them"})
        assert response.status_code == 201
        assert response.json()["status"] == "approved"
        assert response.json()["user_name"] == "John D."

        body = client.get(url).json()
        assert body["average_rating"] == 5.0
        assert body["review_count"] == 1

        again = client.post(url, headers=auth_header(shopper), json={"rating": 1, "title": "Changed my mind"})
        assert again.status_code == 409

    def test_invalid_rating(self, client, headphones, shopper):
        response = client.post(
            f"/products/{headphones.id}/reviews",
            headers=auth_header(shopper),
            json={"rating": 6, "title": "Too good"}
        )
        assert response.status_code == 400

    def test_moderation(self, client, store, headphones, shopper, admin):
        review = client.post(
            f"/products/{headphones.id}/reviews",
            headers=auth_header(shopper),
            json={"rating": 2, "title": "Meh"}
        ).json()

        url = f"/reviews/{review['id']}/status"
        assert client.put(url, headers=auth_header(shopper), json={"status": "rejected"}).status_code == 403
        response = client.put(url, headers=auth_header(admin), json={"status": "pending"})
        assert response.json()["status"] == "pending"

        pending = client.get("/reviews/pending", headers=auth_header(admin)).json()
        assert [r["id"] for r in pending] == [review["id"]]
        assert client.get(f"/products/{headphones.id}/reviews").json()["review_count"] == 0

        helpful = client.post(f"/reviews/{review['id']}/helpful", headers=auth_header(shopper))
        assert helpful.json()["helpful"] == 1

        all_reviews = client.get("/reviews", headers=auth_header(admin), params={"product_id": headphones.id})
        assert len(all_reviews.json()) == 1

        assert client.delete(f"/reviews/{review['id']}", headers=auth_header(admin)).status_code == 204
        assert store.reviews.list() == []


class TestAdminApi:
    """Tests for the back-office dashboard."""

    def test_stats(self, client, store, shopper, admin, headphones):
        client.post("/orders", headers=auth_header(shopper), json={
            "items": [{"product_id": headphones.id, "quantity": 1, "price_at_purchase": 79.99}],
            "shipping_address": "Somewhere",
        })
        add_user(store, "extra@example.com")

        stats = client.get("/admin/stats", headers=auth_header(admin)).json()
        assert stats["order_count"] == 1
        assert stats["total_revenue"] == 91.58
        assert stats["user_count"] == 3
        assert stats["product_count"] == 1
        assert stats["auction_count"] == 0
        assert [o["total"] for o in stats["recent_orders"]] == [91.58]

    def test_stats_requires_admin(self, client, shopper):
        assert client.get("/admin/stats", headers=auth_header(shopper)).status_code == 403
