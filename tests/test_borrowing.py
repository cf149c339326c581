import logging
import threading

import pytest

from borrowing import BorrowingService
from errors import Conflict, Forbidden, NotFound
from schemas import Author, Book
from stores import MemoryStore


def assert_loan_invariant(store):
    for b in store.find_books():
        assert b["is_borrowed"] == (b["borrowed_by_user_id"] is not None)


def test_borrow_return_walkthrough(store, borrowing, book):
    assert book["id"] == 1

    borrowed = borrowing.borrow(user_id=7, book_id=1)
    assert borrowed["is_borrowed"] is True
    assert borrowed["borrowed_by_user_id"] == 7
    assert [b["id"] for b in borrowing.list_borrowed_by(7)] == [1]

    with pytest.raises(Conflict):
        borrowing.borrow(user_id=9, book_id=1)

    with pytest.raises(Forbidden):
        borrowing.return_book(user_id=9, book_id=1)
    assert store.get_book(1)["borrowed_by_user_id"] == 7

    returned = borrowing.return_book(user_id=7, book_id=1)
    assert returned["is_borrowed"] is False
    assert returned["borrowed_by_user_id"] is None
    assert borrowing.list_borrowed_by(7) == []
    assert_loan_invariant(store)


def test_borrow_missing_book(borrowing):
    with pytest.raises(NotFound):
        borrowing.borrow(user_id=1, book_id=999)


def test_return_missing_book(borrowing):
    with pytest.raises(NotFound):
        borrowing.return_book(user_id=1, book_id=999)


def test_return_available_book_is_conflict(store, borrowing, book):
    with pytest.raises(Conflict, match="not borrowed"):
        borrowing.return_book(user_id=7, book_id=book["id"])
    assert store.get_book(book["id"])["is_borrowed"] is False


def test_same_user_cannot_borrow_twice(borrowing, book):
    borrowing.borrow(7, book["id"])
    with pytest.raises(Conflict, match="already borrowed"):
        borrowing.borrow(7, book["id"])


def test_round_trip_restores_loan_state(store, borrowing, book):
    before = store.get_book(book["id"])
    borrowing.borrow(3, book["id"])
    borrowing.return_book(3, book["id"])
    after = store.get_book(book["id"])
    for key in ("is_borrowed", "borrowed_by_user_id", "title", "isbn", "author_id"):
        assert after[key] == before[key]

    # and the book can be borrowed again by someone else
    assert borrowing.borrow(4, book["id"])["borrowed_by_user_id"] == 4


def test_list_borrowed_by_joins_author(store, borrowing, author, book):
    other = store.create_book(Book(title="The Lathe of Heaven", author_id=author["id"]))
    store.create_book(Book(title="Always Coming Home", author_id=author["id"]))
    borrowing.borrow(7, book["id"])
    borrowing.borrow(7, other["id"])
    borrowing.borrow(8, 3)

    mine = borrowing.list_borrowed_by(7)
    assert [b["title"] for b in mine] == ["The Dispossessed", "The Lathe of Heaven"]
    assert all(b["author"]["name"] == "Ursula K. Le Guin" for b in mine)
    assert [b["id"] for b in borrowing.list_borrowed_by(8)] == [3]
    assert borrowing.list_borrowed_by(99) == []


def test_concurrent_borrows_have_one_winner(store, borrowing, book):
    workers = 16
    barrier = threading.Barrier(workers)
    winners, losers = [], []

    def attempt(user_id):
        barrier.wait()
        try:
            borrowing.borrow(user_id, book["id"])
            winners.append(user_id)
        except Conflict:
            losers.append(user_id)

    threads = [threading.Thread(target=attempt, args=(uid,)) for uid in range(1, workers + 1)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(losers) == workers - 1
    assert store.get_book(book["id"])["borrowed_by_user_id"] == winners[0]
    assert_loan_invariant(store)


def test_concurrent_returns_have_one_winner(store, borrowing, book):
    borrowing.borrow(5, book["id"])
    workers = 8
    barrier = threading.Barrier(workers)
    results = []

    def attempt():
        barrier.wait()
        try:
            borrowing.return_book(5, book["id"])
            results.append("ok")
        except Conflict:
            results.append("conflict")

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 1
    assert results.count("conflict") == workers - 1
    assert store.get_book(book["id"])["is_borrowed"] is False


class InterleavingStore(MemoryStore):
    """Runs `interleave` once, right before the first conditional update."""

    def __init__(self, interleave):
        super().__init__()
        self.interleave = interleave

    def update_book_loan_state(self, book_id, **kwargs):
        step, self.interleave = self.interleave, None
        if step is not None:
            step(self, book_id)
        return super().update_book_loan_state(book_id, **kwargs)


def _new_book(store):
    author = store.create_author(Author(name="N. K. Jemisin"))
    return store.create_book(Book(title="The Fifth Season", author_id=author["id"]))


def test_borrow_losing_race_reports_conflict():
    def someone_else_borrows(store, book_id):
        MemoryStore.update_book_loan_state(store, book_id, is_borrowed=True, borrowed_by_user_id=42,
                                           expected_is_borrowed=False)

    store = InterleavingStore(someone_else_borrows)
    book = _new_book(store)
    with pytest.raises(Conflict):
        BorrowingService(store).borrow(7, book["id"])
    assert store.get_book(book["id"])["borrowed_by_user_id"] == 42


def test_borrow_of_book_deleted_mid_request_is_not_found():
    store = InterleavingStore(lambda s, book_id: s.delete_book(book_id))
    book = _new_book(store)
    with pytest.raises(NotFound):
        BorrowingService(store).borrow(7, book["id"])


def test_return_after_book_changed_hands_is_forbidden():
    def returned_and_reborrowed(store, book_id):
        MemoryStore.update_book_loan_state(store, book_id, is_borrowed=False, borrowed_by_user_id=None,
                                           expected_is_borrowed=True, expected_borrower=7)
        MemoryStore.update_book_loan_state(store, book_id, is_borrowed=True, borrowed_by_user_id=8,
                                           expected_is_borrowed=False)

    store = InterleavingStore(None)
    book = _new_book(store)
    service = BorrowingService(store)
    service.borrow(7, book["id"])
    store.interleave = returned_and_reborrowed
    with pytest.raises(Forbidden):
        service.return_book(7, book["id"])
    assert store.get_book(book["id"])["borrowed_by_user_id"] == 8


def test_transitions_are_logged(caplog, borrowing, book):
    caplog.set_level(logging.INFO, logger="borrowing")
    borrowing.borrow(7, book["id"])
    with pytest.raises(Conflict):
        borrowing.borrow(9, book["id"])
    messages = [r.getMessage() for r in caplog.records if r.name == "borrowing"]
    assert f"Book {book['id']} borrowed by user 7" in messages
    assert any("borrow rejected" in m for m in messages)
