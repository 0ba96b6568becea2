from typing import Any, List, Optional

from pydantic import BaseModel


class ContactOut(BaseModel):
    """Schema for returning a contact."""

    id: int
    name: str
    email: str
    date: str
    image: Optional[str] = None
    author_id: str

    class Config:
        from_attributes = True  # allow SQLAlchemy objects


class IdentityOut(BaseModel):
    """One provider account of the caller."""

    providerName: str
    subjectId: str


class MyPageOut(BaseModel):
    """The caller's profile together with the contacts they created."""

    auth0_sub: str
    nickname: str
    firstTime: bool = False
    identities: List[IdentityOut] = []
    contacts: List[ContactOut] = []


class Envelope(BaseModel):
    """Successful API response."""

    success: bool = True
    result: Any = None


class Failure(BaseModel):
    """Failed API response."""

    success: bool = False
    message: str
