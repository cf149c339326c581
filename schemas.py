"""
Database Schemas for the Library System

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase of the class name (e.g., Book -> "book"). Stored documents also carry
an integer "id" and a "created_at" timestamp assigned on insert.

Book documents additionally hold the loan state ("is_borrowed" and
"borrowed_by_user_id"). Those two fields are not part of the Book schema: a
new book is always stored available and only the borrowing service changes
them afterwards.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class LibraryUser(BaseModel):
    email: str = Field(..., description="Email address, stored lowercased")
    name: Optional[str] = Field(None, description="Display name")
    password_hash: str = Field(..., description="Hashed password")
    role: Role = Field(Role.USER, description="Role: user or admin")


class Author(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    bio: Optional[str] = Field(None, description="Short biography")


class Book(BaseModel):
    title: str = Field(..., min_length=1)
    isbn: Optional[str] = None
    author_id: int = Field(..., description="Author id")


# Request payloads

class RegisterPayload(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    name: Optional[str] = None

    @field_validator("password")
    @classmethod
    def fits_bcrypt(cls, v: str) -> str:
        if len(v.encode()) > 72:
            raise ValueError("password must be at most 72 bytes")
        return v


class LoginPayload(BaseModel):
    email: str
    password: str


class UpdateAuthorPayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    bio: Optional[str] = None


class UpdateBookPayload(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    isbn: Optional[str] = None
    author_id: Optional[int] = None


class BorrowPayload(BaseModel):
    book_id: int


class Token(BaseModel):
    token: str
    token_type: str = "bearer"
    user: dict
