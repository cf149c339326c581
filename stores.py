"""
Storage collaborators for users, authors and books.

MongoStore keeps the data in MongoDB; MemoryStore keeps it in process behind a
single lock and is used for tests and for running without a database. Both
expose the same methods and return plain dicts (without Mongo's _id).

Only update_book_loan_state writes the loan fields of a book. It is a
conditional update: the write applies only if the stored record still has the
expected prior loan state, and the updated book (or None) is returned.
"""
import re
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents
from errors import Conflict
from schemas import Author, Book, LibraryUser, Role

USERS = "libraryuser"
AUTHORS = "author"
BOOKS = "book"

AUTHOR_FIELDS = ("name", "bio")
CATALOG_FIELDS = ("title", "isbn", "author_id")

NO_ID = {"_id": 0}


def _only(fields: dict, allowed) -> dict:
    return {k: v for k, v in fields.items() if k in allowed}


def _new_book(book: Book) -> dict:
    doc = book.model_dump(mode="json")
    doc["is_borrowed"] = False
    doc["borrowed_by_user_id"] = None
    return doc


class MongoStore:
    def __init__(self, db: Database):
        self.db = db
        self.db[USERS].create_index("email", unique=True)
        self.db[BOOKS].create_index("author_id")
        self.db[BOOKS].create_index("borrowed_by_user_id")

    def ping(self) -> bool:
        self.db.command("ping")
        return True

    def _update(self, collection_name: str, doc_id: int, fields: dict) -> Optional[dict]:
        fields = dict(fields, updated_at=datetime.now(timezone.utc))
        doc = self.db[collection_name].find_one_and_update(
            {"id": doc_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            doc.pop("_id", None)
        return doc

    # Users

    def create_user(self, user: LibraryUser) -> dict:
        try:
            return create_document(self.db, USERS, user)
        except DuplicateKeyError:
            raise Conflict("Email already registered")

    def get_user(self, user_id: int) -> Optional[dict]:
        return self.db[USERS].find_one({"id": user_id}, NO_ID)

    def get_user_by_email(self, email: str) -> Optional[dict]:
        return self.db[USERS].find_one({"email": email}, NO_ID)

    def list_users(self) -> List[dict]:
        return get_documents(self.db, USERS)

    def set_user_role(self, user_id: int, role: Role) -> Optional[dict]:
        return self._update(USERS, user_id, {"role": role.value})

    def delete_user(self, user_id: int) -> bool:
        return self.db[USERS].delete_one({"id": user_id}).deleted_count == 1

    # Authors

    def create_author(self, author: Author) -> dict:
        return create_document(self.db, AUTHORS, author)

    def get_author(self, author_id: int) -> Optional[dict]:
        return self.db[AUTHORS].find_one({"id": author_id}, NO_ID)

    def list_authors(self) -> List[dict]:
        return get_documents(self.db, AUTHORS)

    def update_author(self, author_id: int, fields: dict) -> Optional[dict]:
        return self._update(AUTHORS, author_id, _only(fields, AUTHOR_FIELDS))

    def delete_author(self, author_id: int) -> bool:
        return self.db[AUTHORS].delete_one({"id": author_id}).deleted_count == 1

    # Books

    def create_book(self, book: Book) -> dict:
        return create_document(self.db, BOOKS, _new_book(book))

    def get_book(self, book_id: int) -> Optional[dict]:
        return self.db[BOOKS].find_one({"id": book_id}, NO_ID)

    def find_books(self, author_id: Optional[int] = None, search: Optional[str] = None,
                   is_borrowed: Optional[bool] = None) -> List[dict]:
        filt: dict = {}
        if author_id is not None:
            filt["author_id"] = author_id
        if is_borrowed is not None:
            filt["is_borrowed"] = is_borrowed
        if search:
            filt["title"] = {"$regex": re.escape(search), "$options": "i"}
        return get_documents(self.db, BOOKS, filt)

    def count_books(self, author_id: Optional[int] = None) -> int:
        filt = {} if author_id is None else {"author_id": author_id}
        return self.db[BOOKS].count_documents(filt)

    def update_book(self, book_id: int, fields: dict) -> Optional[dict]:
        return self._update(BOOKS, book_id, _only(fields, CATALOG_FIELDS))

    def delete_book(self, book_id: int) -> bool:
        return self.db[BOOKS].delete_one({"id": book_id}).deleted_count == 1

    def find_books_by_borrower(self, user_id: int) -> List[dict]:
        return get_documents(self.db, BOOKS, {"is_borrowed": True, "borrowed_by_user_id": user_id})

    def update_book_loan_state(self, book_id: int, is_borrowed: bool, borrowed_by_user_id: Optional[int],
                               expected_is_borrowed: bool, expected_borrower: Optional[int] = None) -> Optional[dict]:
        # Single-document find_one_and_update is atomic in MongoDB.
        query = {"id": book_id, "is_borrowed": expected_is_borrowed}
        if expected_borrower is not None:
            query["borrowed_by_user_id"] = expected_borrower
        doc = self.db[BOOKS].find_one_and_update(
            query,
            {"$set": {
                "is_borrowed": is_borrowed,
                "borrowed_by_user_id": borrowed_by_user_id,
                "updated_at": datetime.now(timezone.utc),
            }},
            return_document=ReturnDocument.AFTER,
        )
        # The filter no longer matches after the write, so _id stays in the
        # returned document and is stripped here.
        if doc is not None:
            doc.pop("_id", None)
        return doc


class MemoryStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[int, dict]] = {USERS: {}, AUTHORS: {}, BOOKS: {}}
        self._counters: Dict[str, int] = {}

    def ping(self) -> bool:
        return True

    # Callers must hold self._lock for the helpers below.

    def _insert(self, collection_name: str, doc: dict) -> dict:
        seq = self._counters.get(collection_name, 0) + 1
        self._counters[collection_name] = seq
        now = datetime.now(timezone.utc)
        doc = dict(doc, id=seq, created_at=now, updated_at=now)
        self._data[collection_name][seq] = doc
        return dict(doc)

    def _get(self, collection_name: str, doc_id: int) -> Optional[dict]:
        doc = self._data[collection_name].get(doc_id)
        return dict(doc) if doc is not None else None

    def _update(self, collection_name: str, doc_id: int, fields: dict) -> Optional[dict]:
        doc = self._data[collection_name].get(doc_id)
        if doc is None:
            return None
        doc.update(fields, updated_at=datetime.now(timezone.utc))
        return dict(doc)

    def _delete(self, collection_name: str, doc_id: int) -> bool:
        return self._data[collection_name].pop(doc_id, None) is not None

    def _select(self, collection_name: str, predicate) -> List[dict]:
        return [dict(d) for d in self._data[collection_name].values() if predicate(d)]

    # Users

    def create_user(self, user: LibraryUser) -> dict:
        doc = user.model_dump(mode="json")
        with self._lock:
            if any(u["email"] == doc["email"] for u in self._data[USERS].values()):
                raise Conflict("Email already registered")
            return self._insert(USERS, doc)

    def get_user(self, user_id: int) -> Optional[dict]:
        with self._lock:
            return self._get(USERS, user_id)

    def get_user_by_email(self, email: str) -> Optional[dict]:
        with self._lock:
            found = self._select(USERS, lambda u: u["email"] == email)
        return found[0] if found else None

    def list_users(self) -> List[dict]:
        with self._lock:
            return self._select(USERS, lambda u: True)

    def set_user_role(self, user_id: int, role: Role) -> Optional[dict]:
        with self._lock:
            return self._update(USERS, user_id, {"role": role.value})

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            return self._delete(USERS, user_id)

    # Authors

    def create_author(self, author: Author) -> dict:
        with self._lock:
            return self._insert(AUTHORS, author.model_dump(mode="json"))

    def get_author(self, author_id: int) -> Optional[dict]:
        with self._lock:
            return self._get(AUTHORS, author_id)

    def list_authors(self) -> List[dict]:
        with self._lock:
            return self._select(AUTHORS, lambda a: True)

    def update_author(self, author_id: int, fields: dict) -> Optional[dict]:
        with self._lock:
            return self._update(AUTHORS, author_id, _only(fields, AUTHOR_FIELDS))

    def delete_author(self, author_id: int) -> bool:
        with self._lock:
            return self._delete(AUTHORS, author_id)

    # Books

    def create_book(self, book: Book) -> dict:
        with self._lock:
            return self._insert(BOOKS, _new_book(book))

    def get_book(self, book_id: int) -> Optional[dict]:
        with self._lock:
            return self._get(BOOKS, book_id)

    def find_books(self, author_id: Optional[int] = None, search: Optional[str] = None,
                   is_borrowed: Optional[bool] = None) -> List[dict]:
        term = search.lower() if search else None

        def matches(b: dict) -> bool:
            return (
                (author_id is None or b["author_id"] == author_id)
                and (is_borrowed is None or b["is_borrowed"] == is_borrowed)
                and (term is None or term in b["title"].lower())
            )

        with self._lock:
            return self._select(BOOKS, matches)

    def count_books(self, author_id: Optional[int] = None) -> int:
        return len(self.find_books(author_id=author_id))

    def update_book(self, book_id: int, fields: dict) -> Optional[dict]:
        with self._lock:
            return self._update(BOOKS, book_id, _only(fields, CATALOG_FIELDS))

    def delete_book(self, book_id: int) -> bool:
        with self._lock:
            return self._delete(BOOKS, book_id)

    def find_books_by_borrower(self, user_id: int) -> List[dict]:
        with self._lock:
            return self._select(BOOKS, lambda b: b["is_borrowed"] and b["borrowed_by_user_id"] == user_id)

    def update_book_loan_state(self, book_id: int, is_borrowed: bool, borrowed_by_user_id: Optional[int],
                               expected_is_borrowed: bool, expected_borrower: Optional[int] = None) -> Optional[dict]:
        with self._lock:
            book = self._data[BOOKS].get(book_id)
            if book is None or book["is_borrowed"] != expected_is_borrowed:
                return None
            if expected_borrower is not None and book["borrowed_by_user_id"] != expected_borrower:
                return None
            return self._update(BOOKS, book_id, {
                "is_borrowed": is_borrowed,
                "borrowed_by_user_id": borrowed_by_user_id,
            })
