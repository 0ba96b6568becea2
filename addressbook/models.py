"""Database models for the address book.

This module defines the SQLAlchemy ORM models for the two tables the
service owns.
"""

from sqlalchemy import Column, ForeignKey, Integer, String

from .database import Base


class User(Base):
    """
    SQLAlchemy model representing a person known to the identity provider.

    Several rows may share a nickname: one per provider the same person
    has signed in with.
    """

    __tablename__ = "users"

    id = Column("user_id", Integer, primary_key=True)
    auth0_sub = Column(String(255), unique=True, nullable=False)
    nickname = Column(String(255), nullable=False, index=True)


class Contact(Base):
    """
    SQLAlchemy model representing an address book entry.

    ``author_id`` holds the ``auth0_sub`` of the user who created the
    contact and never changes afterwards.
    """

    __tablename__ = "contacts"

    id = Column("contact_id", Integer, primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    #: Creation time as ``YYYY-MM-DD HH:mm:ss.sss`` text
    date = Column(String(23), nullable=False, index=True)
    #: Filename of the uploaded picture
    image = Column(String(255), nullable=True)

    author_id = Column(
        String(255),
        ForeignKey("users.auth0_sub"),
        nullable=False,
        index=True,
    )
