import pydantic
from datetime import datetime
from pydantic import ConfigDict, EmailStr
from pydantic.alias_generators import to_camel
import uuid

class UserCreate(pydantic.BaseModel):
    """
    Registration payload. Includes the plain password, which is hashed
    before it reaches the database.
    """
    name: str = pydantic.Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = pydantic.Field(min_length=6)

    @pydantic.field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

class LoginRequest(pydantic.BaseModel):
    email: EmailStr
    password: str

class User(pydantic.BaseModel):
    """
    Model used when reading user data (e.g., returning from API).
    It does NOT include the password hash.
    """
    id: uuid.UUID
    name: str
    email: EmailStr
    created_at: datetime

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )

def serialize_user(user) -> dict:
    return User.model_validate(user).model_dump(mode="json", by_alias=True)
