"""
Catalog (authors and books) and identity (users) operations.

These sit between the HTTP routes and the store and hold the referential
checks: a book must point at an existing author, an author with books cannot
be deleted, and a user holding loans cannot be deleted. Loan state is never
written here; see borrowing.BorrowingService.
"""
import logging
from typing import List, Optional

from errors import BadRequest, Conflict, NotFound, Unauthorized
from schemas import Author, Book, LibraryUser, RegisterPayload, Role
from security import hash_password, make_token, verify_password

logger = logging.getLogger(__name__)


def public_user(user: Optional[dict]) -> Optional[dict]:
    if user is None:
        return None
    user = dict(user)
    user.pop("password_hash", None)
    return user


class CatalogService:
    def __init__(self, store):
        self.store = store

    # Authors

    def list_authors(self) -> List[dict]:
        books = self.store.find_books()
        return [
            dict(a, books=[b for b in books if b["author_id"] == a["id"]])
            for a in self.store.list_authors()
        ]

    def get_author(self, author_id: int) -> dict:
        author = self.store.get_author(author_id)
        if author is None:
            raise NotFound("Author not found")
        return dict(author, books=self.store.find_books(author_id=author_id))

    def create_author(self, author: Author) -> dict:
        return self.store.create_author(author)

    def update_author(self, author_id: int, fields: dict) -> dict:
        if "name" in fields and fields["name"] is None:
            raise BadRequest("name must not be null")
        self.get_author(author_id)
        updated = self.store.update_author(author_id, fields)
        if updated is None:
            raise NotFound("Author not found")
        return updated

    def delete_author(self, author_id: int) -> dict:
        author = self.get_author(author_id)
        if author["books"]:
            raise Conflict("Author still has books")
        if not self.store.delete_author(author_id):
            raise NotFound("Author not found")
        return author

    # Books

    def _check_author(self, author_id: int) -> None:
        if self.store.get_author(author_id) is None:
            raise BadRequest("Invalid author_id")

    def _expand(self, book: dict, authors: Optional[dict] = None) -> dict:
        authors = authors if authors is not None else {}
        author_id = book["author_id"]
        if author_id not in authors:
            authors[author_id] = self.store.get_author(author_id)
        borrower = None
        if book["borrowed_by_user_id"] is not None:
            borrower = public_user(self.store.get_user(book["borrowed_by_user_id"]))
        return dict(book, author=authors[author_id], borrowed_by=borrower)

    def list_books(self, author_id: Optional[int] = None, search: Optional[str] = None,
                   is_borrowed: Optional[bool] = None) -> List[dict]:
        authors: dict = {}
        books = self.store.find_books(author_id=author_id, search=search, is_borrowed=is_borrowed)
        return [self._expand(b, authors) for b in books]

    def get_book(self, book_id: int) -> dict:
        book = self.store.get_book(book_id)
        if book is None:
            raise NotFound("Book not found")
        return self._expand(book)

    def create_book(self, book: Book) -> dict:
        self._check_author(book.author_id)
        return self.store.create_book(book)

    def update_book(self, book_id: int, fields: dict) -> dict:
        if self.store.get_book(book_id) is None:
            raise NotFound("Book not found")
        if "title" in fields and fields["title"] is None:
            raise BadRequest("title must not be null")
        if "author_id" in fields:
            self._check_author(fields["author_id"])
        updated = self.store.update_book(book_id, fields)
        if updated is None:
            raise NotFound("Book not found")
        return updated

    def delete_book(self, book_id: int) -> dict:
        book = self.get_book(book_id)
        if not self.store.delete_book(book_id):
            raise NotFound("Book not found")
        return book


class UserService:
    def __init__(self, store):
        self.store = store

    def register(self, payload: RegisterPayload) -> dict:
        user = LibraryUser(
            email=payload.email.strip().lower(),
            name=payload.name,
            password_hash=hash_password(payload.password),
            role=Role.USER,
        )
        created = self.store.create_user(user)
        logger.info("Registered user %s", created["id"])
        return public_user(created)

    def login(self, email: str, password: str) -> dict:
        user = self.store.get_user_by_email(email.strip().lower())
        if not user or not verify_password(password, user.get("password_hash", "")):
            logger.warning("Failed login for %s", email)
            raise Unauthorized("Invalid credentials")
        return {"token": make_token(user["id"]), "token_type": "bearer", "user": public_user(user)}

    def get(self, user_id: int) -> dict:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return public_user(user)

    def list_users(self) -> List[dict]:
        return [public_user(u) for u in self.store.list_users()]

    def promote(self, user_id: int) -> dict:
        user = self.store.set_user_role(user_id, Role.ADMIN)
        if user is None:
            raise NotFound("User not found")
        logger.info("Promoted user %s to admin", user_id)
        return public_user(user)

    def delete(self, user_id: int) -> dict:
        user = self.get(user_id)
        if self.store.find_books_by_borrower(user_id):
            raise Conflict("User still has borrowed books")
        if not self.store.delete_user(user_id):
            raise NotFound("User not found")
        logger.info("Deleted user %s", user_id)
        return user
