"""
Borrowing rules for books.

A book is either available or on loan to exactly one user. BorrowingService is
the only code that moves a book between the two states, and it does so through
the store's conditional update so that a concurrent borrow or return on the
same book cannot both succeed.

    available --borrow(u)--> borrowed(u)
    borrowed(u) --return(u)--> available

Returning an available book is a Conflict; returning a book someone else holds
is Forbidden (admins included); borrowing a borrowed book is a Conflict.
"""
import logging
from typing import List

from errors import Conflict, Forbidden, NotFound

logger = logging.getLogger(__name__)


class BorrowingService:
    def __init__(self, store):
        self.store = store

    def _get_book(self, book_id: int) -> dict:
        book = self.store.get_book(book_id)
        if book is None:
            raise NotFound("Book not found")
        return book

    def _reject(self, error, user_id: int, book_id: int, action: str):
        logger.info("%s rejected: user=%s book=%s (%s)", action, user_id, book_id, error.detail)
        raise error

    def _check_borrow(self, user_id: int, book: dict) -> None:
        if book["is_borrowed"]:
            self._reject(Conflict("Book is already borrowed"), user_id, book["id"], "borrow")

    def _check_return(self, user_id: int, book: dict) -> None:
        if not book["is_borrowed"]:
            self._reject(Conflict("Book is not borrowed"), user_id, book["id"], "return")
        if book["borrowed_by_user_id"] != user_id:
            self._reject(Forbidden("You did not borrow this book"), user_id, book["id"], "return")

    def borrow(self, user_id: int, book_id: int) -> dict:
        self._check_borrow(user_id, self._get_book(book_id))
        updated = self.store.update_book_loan_state(
            book_id, is_borrowed=True, borrowed_by_user_id=user_id, expected_is_borrowed=False,
        )
        if updated is None:
            # Lost the race: report what the current state says.
            self._check_borrow(user_id, self._get_book(book_id))
            self._reject(Conflict("Book is already borrowed"), user_id, book_id, "borrow")
        logger.info("Book %s borrowed by user %s", book_id, user_id)
        return updated

    def return_book(self, user_id: int, book_id: int) -> dict:
        self._check_return(user_id, self._get_book(book_id))
        updated = self.store.update_book_loan_state(
            book_id, is_borrowed=False, borrowed_by_user_id=None,
            expected_is_borrowed=True, expected_borrower=user_id,
        )
        if updated is None:
            self._check_return(user_id, self._get_book(book_id))
            self._reject(Conflict("Book is not borrowed"), user_id, book_id, "return")
        logger.info("Book %s returned by user %s", book_id, user_id)
        return updated

    def list_borrowed_by(self, user_id: int) -> List[dict]:
        """Books currently on loan to the user, each with its author under "author"."""
        authors: dict = {}
        books = []
        for book in self.store.find_books_by_borrower(user_id):
            author_id = book["author_id"]
            if author_id not in authors:
                authors[author_id] = self.store.get_author(author_id)
            books.append(dict(book, author=authors[author_id]))
        return books
