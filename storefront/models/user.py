# storefront/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Local mirror of an identity-provider account.

    The primary key is the token's "sub" claim. Guests never get a row;
    they are identified by X-Session-Token alone.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(primary_key=True, index=True)
    email: str = Field(unique=True, index=True)
    name: str = Field(max_length=120)

    # "user" | "admin"
    role: str = Field(default="user", index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )
