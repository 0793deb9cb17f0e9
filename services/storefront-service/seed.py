"""Demo data loaded into an empty store."""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from domain import Auction, Bid, Order, OrderItem, Product, Review, User, utcnow
from engines.order_engine import OrderLine, compute_totals, format_order_number
from repositories.base import Store
from security import hash_password

logger = logging.getLogger(__name__)

USERS = [
    # email, password, first name, last name, role
    ("admin@shopng.com", "admin123", "Admin", "User", "admin"),
    ("user@shopng.com", "user123", "John", "Doe", "user"),
    ("jane.smith@example.com", "jane123", "Jane", "Smith", "user"),
    ("mark.johnson@example.com", "mark123", "Mark", "Johnson", "user"),
    ("sarah.williams@example.com", "sarah123", "Sarah", "Williams", "user"),
]

PRODUCTS = [
    # name, price, category, rating, stock
    ("Wireless Bluetooth Headphones", "79.99", "Electronics", "4.5", 15),
    ("Smart Watch Pro", "199.99", "Electronics", "4.2", 8),
    ("Portable Bluetooth Speaker", "49.99", "Electronics", "4.0", 22),
    ("Classic Denim Jacket", "89.99", "Clothing", "4.7", 12),
    ("Running Sneakers Ultra", "129.99", "Clothing", "4.6", 18),
    ("Wool Blend Overcoat", "159.99", "Clothing", "4.3", 5),
    ("The Art of Clean Code", "34.99", "Books", "4.8", 30),
    ("Modern JavaScript Deep Dive", "44.99", "Books", "4.9", 25),
    ("Design Patterns Handbook", "39.99", "Books", "4.4", 20),
    ("Ceramic Plant Pot Set", "29.99", "Home", "4.1", 35),
    ("LED Desk Lamp", "54.99", "Home", "4.3", 14),
    ("Scented Candle Collection", "24.99", "Home", "4.6", 40),
]

ORDERS = [
    # user index, status, days ago, address, [(product index, quantity)]
    (1, "pending", 60, "742 Evergreen Terrace, Springfield, IL 62704", [(0, 1), (9, 2)]),
    (2, "processing", 40, "1600 Pennsylvania Ave NW, Washington, DC 20500", [(1, 1)]),
    (3, "shipped", 20, "350 Fifth Avenue, New York, NY 10118", [(6, 1), (7, 1), (8, 1)]),
    (4, "delivered", 10, "221B Baker Street, London, CA 90210", [(3, 1), (4, 1)]),
    (1, "cancelled", 5, "742 Evergreen Terrace, Springfield, IL 62704", [(10, 3)]),
]

AUCTIONS = [
    # seller index, title, category, starting price, created days ago, ends in hours, status,
    # [(bidder index, amount, days ago)]
    (2, "Vintage Mechanical Keyboard", "Electronics", "45.00", 3, 48, "active",
     [(1, "50.00", 2.5), (3, "58.00", 2), (4, "65.00", 1.5), (1, "78.00", 1)]),
    (1, "Limited Edition Sneakers", "Clothing", "120.00", 2, 5, "active",
     [(2, "135.00", 1.5), (3, "155.00", 1), (2, "185.00", 0.5)]),
    (3, "First Edition Novel Collection", "Books", "60.00", 4, 24, "active",
     [(1, "70.00", 3), (4, "82.00", 2), (1, "95.00", 1)]),
    (4, "Handmade Ceramic Vase Set", "Home", "35.00", 1, 72, "active",
     [(1, "42.00", 0.8), (2, "52.00", 0.3)]),
    (1, "Retro Gaming Console Bundle", "Electronics", "80.00", 10, -24, "sold",
     [(2, "90.00", 8), (3, "105.00", 6), (4, "120.00", 4), (2, "132.00", 3), (3, "145.00", 2)]),
    (2, "Designer Sunglasses", "Clothing", "55.00", 7, -48, "cancelled", []),
]

REVIEWS = [
    # product index, user index, rating, title, status
    (0, 1, 5, "Best headphones I've owned", "approved"),
    (0, 2, 4, "Great sound, slightly tight fit", "approved"),
    (0, 3, 4, "Solid purchase", "approved"),
    (1, 4, 5, "Love the health tracking", "approved"),
    (1, 1, 4, "Stylish and functional", "approved"),
    (2, 2, 5, "Non-slip and comfortable", "approved"),
    (3, 4, 5, "Perfect fit and quality denim", "approved"),
    (3, 3, 3, "Good jacket, runs small", "approved"),
    (6, 3, 5, "Must-read for developers", "approved"),
    (6, 2, 4, "Good principles, some basics", "approved"),
    (4, 1, 5, "Like running on clouds", "approved"),
    (1, 3, 2, "Battery died after 2 months", "pending"),
]


def seed_store(store: Store, now: Optional[datetime] = None) -> bool:
    """
    Load demo data if the store has no products yet.

    Args:
        store: Store to populate
        now: Reference time for relative timestamps

    Returns:
        True if data was inserted
    """
    if store.products.list():
        return False

    now = now or utcnow()

    with store.transaction():
        users = []
        for email, password, first_name, last_name, role in USERS:
            users.append(store.users.insert(User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=role,
                created_at=now - timedelta(days=90),
            )))

        products = []
        for name, price, category, rating, stock in PRODUCTS:
            slug = name.lower().replace(" ", "-")
            products.append(store.products.insert(Product(
                name=name,
                description=f"{name} from the {category.lower()} collection.",
                price=Decimal(price),
                image=f"https://picsum.photos/seed/{slug}/400/400",
                category=category,
                rating=Decimal(rating),
                stock=stock,
                created_at=now - timedelta(days=90),
            )))

        for user_index, status, days_ago, address, lines in ORDERS:
            order_lines = [
                OrderLine(products[p].id, quantity, products[p].price)
                for p, quantity in lines
            ]
            order = store.orders.insert(Order(
                user_id=users[user_index].id,
                status=status,
                shipping_address=address,
                created_at=now - timedelta(days=days_ago),
                **compute_totals(order_lines)
            ))
            order.order_number = format_order_number(order.id)
            store.orders.update(order)
            for line in order_lines:
                store.order_items.insert(OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price_at_purchase=line.price_at_purchase,
                ))

        for seller, title, category, price, created_days, ends_hours, status, bids in AUCTIONS:
            seller_user = users[seller]
            auction = Auction(
                seller_id=seller_user.id,
                seller_name=seller_user.display_name,
                title=title,
                description=f"{title}, listed by {seller_user.display_name}.",
                image_url=f"https://picsum.photos/seed/{title.lower().replace(' ', '-')}/600/400",
                category=category,
                starting_price=Decimal(price),
                current_price=Decimal(bids[-1][1]) if bids else Decimal(price),
                bid_count=len(bids),
                status=status,
                created_at=now - timedelta(days=created_days),
                ends_at=now + timedelta(hours=ends_hours),
            )
            if status == "sold":
                winner = users[bids[-1][0]]
                auction.winner_id = winner.id
                auction.winner_name = winner.display_name
            store.auctions.insert(auction)
            for bidder, amount, days_ago in bids:
                store.bids.insert(Bid(
                    auction_id=auction.id,
                    bidder_id=users[bidder].id,
                    bidder_name=users[bidder].display_name,
                    amount=Decimal(amount),
                    created_at=now - timedelta(days=days_ago),
                ))

        for product_index, user_index, rating, title, status in REVIEWS:
            store.reviews.insert(Review(
                product_id=products[product_index].id,
                user_id=users[user_index].id,
                user_name=users[user_index].display_name,
                rating=rating,
                title=title,
                comment=title,
                status=status,
                created_at=now - timedelta(days=30 - product_index),
            ))

    logger.info("Seeded store with demo data", extra={
        "users": len(USERS),
        "products": len(PRODUCTS),
        "orders": len(ORDERS),
        "auctions": len(AUCTIONS),
        "reviews": len(REVIEWS)
    })
    return True
