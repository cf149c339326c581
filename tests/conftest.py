import pytest
from fastapi.testclient import TestClient

from borrowing import BorrowingService
from config import settings
from schemas import Author, Book
from stores import MemoryStore


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    # lowest cost bcrypt accepts
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def author(store):
    return store.create_author(Author(name="Ursula K. Le Guin", bio="Earthsea, Hainish cycle"))


@pytest.fixture
def book(store, author):
    return store.create_book(Book(title="The Dispossessed", isbn="9780061054884", author_id=author["id"]))


@pytest.fixture
def borrowing(store):
    return BorrowingService(store)


@pytest.fixture
def client(store):
    import main

    # Route every request to this test's store instead of the one built at startup
    main.app.dependency_overrides[main.get_store] = lambda: store
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
