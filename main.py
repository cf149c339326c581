import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from access import Requirement, authorize
from borrowing import BorrowingService
from catalog import CatalogService, UserService, public_user
from config import settings
from database import connect
from errors import LibraryError, Unauthorized
from schemas import (
    Author,
    Book,
    BorrowPayload,
    LoginPayload,
    RegisterPayload,
    Role,
    Token,
    UpdateAuthorPayload,
    UpdateBookPayload,
)
from security import parse_token
from seed import seed_demo_data
from stores import MemoryStore, MongoStore

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_store():
    if settings.database_url:
        return MongoStore(connect(settings.database_url, settings.database_name))
    logger.warning("DATABASE_URL not set, using the in-memory store")
    return MemoryStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = build_store()
    if settings.seed_on_start:
        seed_demo_data(app.state.store)
    yield


app = FastAPI(title="Library API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


# Dependencies

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(request: Request):
    return request.app.state.store


def get_catalog(store=Depends(get_store)) -> CatalogService:
    return CatalogService(store)


def get_users(store=Depends(get_store)) -> UserService:
    return UserService(store)


def get_borrowing(store=Depends(get_store)) -> BorrowingService:
    return BorrowingService(store)


def get_actor(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
              store=Depends(get_store)) -> Optional[dict]:
    """The user a valid bearer token belongs to, or None."""
    if credentials is None or not credentials.credentials:
        return None
    uid = parse_token(credentials.credentials)
    if uid is None:
        logger.warning("Rejected invalid or expired token")
        return None
    return store.get_user(uid)


def _role_of(actor: Optional[dict]) -> Optional[Role]:
    return Role(actor["role"]) if actor else None


def current_user(actor: Optional[dict] = Depends(get_actor)) -> dict:
    authorize(_role_of(actor), Requirement.AUTHENTICATED)
    return actor


def admin_user(actor: Optional[dict] = Depends(get_actor)) -> dict:
    authorize(_role_of(actor), Requirement.ADMIN)
    return actor


# Health
@app.get("/")
def root():
    return {"name": "Library API", "status": "ok"}


@app.get("/health")
def health(store=Depends(get_store)):
    response = {"backend": "ok", "database": "unavailable", "store": type(store).__name__}
    try:
        store.ping()
        response["database"] = "ok"
    except Exception as e:
        logger.warning("Store ping failed: %s", e)
    return response


# Auth
@app.post("/auth/register", status_code=201)
def register(payload: RegisterPayload, users: UserService = Depends(get_users)):
    return {"message": "User registered", "user": users.register(payload)}


@app.post("/auth/login", response_model=Token)
def login(payload: LoginPayload, users: UserService = Depends(get_users)):
    return users.login(payload.email, payload.password)


# Users
@app.get("/users")
def list_users(current=Depends(admin_user), users: UserService = Depends(get_users)):
    return users.list_users()


@app.get("/users/me")
def me(current=Depends(current_user)):
    return public_user(current)


@app.patch("/users/promote/{user_id}")
def promote_user(user_id: int, current=Depends(admin_user), users: UserService = Depends(get_users)):
    return users.promote(user_id)


@app.delete("/users/{user_id}")
def delete_user(user_id: int, current=Depends(admin_user), users: UserService = Depends(get_users)):
    users.delete(user_id)
    return {"deleted": True}


# Authors
@app.get("/authors")
def list_authors(catalog: CatalogService = Depends(get_catalog)):
    return catalog.list_authors()


@app.get("/authors/{author_id}")
def get_author(author_id: int, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_author(author_id)


@app.post("/authors", status_code=201)
def create_author(author: Author, current=Depends(admin_user), catalog: CatalogService = Depends(get_catalog)):
    return catalog.create_author(author)


@app.patch("/authors/{author_id}")
def update_author(author_id: int, payload: UpdateAuthorPayload, current=Depends(admin_user),
                  catalog: CatalogService = Depends(get_catalog)):
    return catalog.update_author(author_id, payload.model_dump(exclude_unset=True))


@app.delete("/authors/{author_id}")
def delete_author(author_id: int, current=Depends(admin_user), catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_author(author_id)
    return {"deleted": True}


# Books
@app.get("/books")
def list_books(author_id: Optional[int] = None, search: Optional[str] = None, is_borrowed: Optional[bool] = None,
               catalog: CatalogService = Depends(get_catalog)):
    return catalog.list_books(author_id=author_id, search=search, is_borrowed=is_borrowed)


@app.get("/books/{book_id}")
def get_book(book_id: int, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_book(book_id)


@app.post("/books", status_code=201)
def create_book(book: Book, current=Depends(admin_user), catalog: CatalogService = Depends(get_catalog)):
    return catalog.create_book(book)


@app.patch("/books/{book_id}")
def update_book(book_id: int, payload: UpdateBookPayload, current=Depends(admin_user),
                catalog: CatalogService = Depends(get_catalog)):
    return catalog.update_book(book_id, payload.model_dump(exclude_unset=True))


@app.delete("/books/{book_id}")
def delete_book(book_id: int, current=Depends(admin_user), catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_book(book_id)
    return {"deleted": True}


# Borrow / Return
@app.post("/borrow")
def borrow_book(payload: BorrowPayload, current=Depends(current_user),
                borrowing: BorrowingService = Depends(get_borrowing)):
    return borrowing.borrow(current["id"], payload.book_id)


@app.post("/borrow/return")
def return_book(payload: BorrowPayload, current=Depends(current_user),
                borrowing: BorrowingService = Depends(get_borrowing)):
    return borrowing.return_book(current["id"], payload.book_id)


@app.get("/borrow/user/me")
def my_borrowed_books(current=Depends(current_user), borrowing: BorrowingService = Depends(get_borrowing)):
    return borrowing.list_borrowed_by(current["id"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
