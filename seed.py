"""
Demo data: an admin, regular users, authors, books, and a share of books on loan.

Loans are created through BorrowingService like any other borrow.

    python seed.py
"""
import logging
import random
from typing import Optional, Tuple

from borrowing import BorrowingService
from catalog import CatalogService, UserService
from schemas import Author, Book, RegisterPayload

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin123"
USER_PASSWORD = "user123"

FIRST_NAMES = ["Ada", "Ben", "Chloe", "Dev", "Elena", "Farid", "Grace", "Hiro", "Ines", "Jonas",
               "Kemi", "Liam", "Maya", "Nikolai", "Olga", "Priya", "Quinn", "Rosa", "Sam", "Tomas"]
LAST_NAMES = ["Abbott", "Barker", "Castillo", "Dubois", "Eriksen", "Fischer", "Gallo", "Haddad",
              "Ito", "Jensen", "Kowalski", "Lindqvist", "Moreau", "Novak", "Okafor", "Petrov"]
TITLE_WORDS = ["silent", "river", "glass", "winter", "garden", "machine", "empire", "letters",
               "shadow", "north", "harbor", "atlas", "orchard", "signal", "ember", "tide", "quiet", "city"]


def _full_name(rng: random.Random) -> str:
    return f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}"


def seed_demo_data(store, users: int = 100, authors: int = 20, books: int = 150,
                   borrow_ratio: Tuple[float, float] = (0.2, 0.4),
                   rng: Optional[random.Random] = None) -> bool:
    """Fill an empty store.

    Returns False without changes if the store already has users or books.
    borrow_ratio is the (low, high) share of books put on loan.
    """
    if store.count_books() > 0 or store.list_users():
        logger.info("Store is not empty, skipping seed")
        return False
    rng = rng or random.Random()
    user_service = UserService(store)
    catalog = CatalogService(store)
    borrowing = BorrowingService(store)

    admin = user_service.register(RegisterPayload(email=ADMIN_EMAIL, password=ADMIN_PASSWORD, name="Admin User"))
    user_service.promote(admin["id"])
    user_ids = [admin["id"]]
    for i in range(users - 1):
        name = _full_name(rng)
        email = f"{name.lower().replace(' ', '.')}.{i}@example.com"
        user_ids.append(user_service.register(RegisterPayload(email=email, password=USER_PASSWORD, name=name))["id"])
    logger.info("Created %d users", len(user_ids))

    author_ids = []
    for _ in range(authors):
        bio = " ".join(rng.sample(TITLE_WORDS, 6)).capitalize() + "."
        author_ids.append(catalog.create_author(Author(name=_full_name(rng), bio=bio))["id"])
    logger.info("Created %d authors", len(author_ids))

    book_ids = []
    for i in range(books):
        title = " ".join(rng.sample(TITLE_WORDS, rng.randint(2, 5))).title()
        book = Book(title=title, isbn=f"978{i:010d}", author_id=rng.choice(author_ids))
        book_ids.append(catalog.create_book(book)["id"])
    logger.info("Created %d books", len(book_ids))

    low, high = borrow_ratio
    count = rng.randint(int(books * low), int(books * high))
    for book_id in rng.sample(book_ids, count):
        borrowing.borrow(rng.choice(user_ids), book_id)
    logger.info("Borrowed %d books", count)
    return True


if __name__ == "__main__":
    from main import build_store
    seed_demo_data(build_store())
