"""Repository operations for contacts and users.

This module contains database interaction logic for contact and user
entities, isolated from FastAPI route handlers. Every statement is built
with SQLAlchemy constructs, so values are always bound parameters.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

#: Accepted ``order_by`` values mapped to model attributes
ORDER_COLUMNS = {
    "id": "id",
    "contact_id": "id",
    "name": "name",
    "email": "email",
    "date": "date",
}

#: Smallest value of each sortable column, used as the ascending start cursor.
#: The empty string sorts below any non-empty text under BINARY collation.
START_CURSORS = {
    "id": 0,
    "name": "",
    "email": "",
    "date": "",
}

UPDATABLE_FIELDS = ("name", "email", "image")


def now_for_sqlite() -> str:
    """Return the current UTC time formatted as ``YYYY-MM-DD HH:mm:ss.sss``."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.isoformat(sep=" ", timespec="milliseconds")


def build_assignments(keys: Iterable[str], values: Mapping[str, Any]) -> dict:
    """
    Pick the present values for ``keys`` out of ``values``.

    Keys that are missing from ``values`` or map to ``None`` are skipped,
    so the result can be passed straight to ``.values()`` or turned into
    equality conditions.

    Args:
        keys (Iterable[str]): Field names, in the order to keep.
        values (Mapping[str, Any]): Candidate values.

    Returns:
        dict: Field name to value for every present key.
    """
    return {key: values[key] for key in keys if values.get(key) is not None}


def build_conditions(model, criteria: Mapping[str, Any]) -> list:
    """Turn ``{attribute: value}`` into ``model.attribute == value`` clauses."""
    present = build_assignments(criteria.keys(), criteria)
    return [getattr(model, key) == value for key, value in present.items()]


@dataclass(frozen=True)
class Identity:
    """One identity-provider account belonging to a person."""

    provider_name: str
    subject_id: str

    @classmethod
    def from_subject(cls, auth0_sub: str) -> "Identity":
        """
        Derive the provider from a subject id.

        ``"google-oauth2|123"`` belongs to provider ``"google"``.
        """
        provider_type = auth0_sub.split("|")[0]
        return cls(provider_name=provider_type.split("-")[0], subject_id=auth0_sub)


class ContactRepository:
    """Create, read, update, delete and list contacts."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str | None,
        email: str | None,
        author_id: str | None,
        image: str | None = None,
    ) -> int:
        """
        Insert a new contact owned by ``author_id``.

        Args:
            name (str): Contact name.
            email (str): Contact email.
            author_id (str): Subject id of the owner.
            image (str | None): Stored image filename.

        Raises:
            ValidationError: If name, email or author_id is empty.
            StorageError: If the database rejects the row.

        Returns:
            int: Identifier of the new contact.
        """
        if not name or not email or not author_id:
            raise ValidationError("you must provide a name, an email, and an author_id")

        statement = insert(models.Contact.__table__).values(
            name=name,
            email=email,
            date=now_for_sqlite(),
            image=image or None,
            author_id=author_id,
        )
        try:
            result = self.db.execute(statement)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"couldn't insert this combination: {e}") from e

        contact_id = result.inserted_primary_key[0]
        logger.info("contact %s created by %s", contact_id, author_id)
        return contact_id

    def delete(self, contact_id: int, author_id: str | None) -> bool:
        """
        Delete a contact owned by ``author_id``.

        A contact owned by someone else is reported exactly like a missing
        one.

        Raises:
            ValidationError: If author_id is empty.
            NotFoundError: If no row matched both id and owner.
            StorageError: If the statement fails.

        Returns:
            bool: ``True`` once the row is gone.
        """
        if not author_id:
            raise ValidationError("you must provide an author_id")

        statement = delete(models.Contact).where(
            models.Contact.id == contact_id,
            models.Contact.author_id == author_id,
        )
        try:
            result = self.db.execute(statement)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"couldn't delete the contact {contact_id}: {e}") from e

        if result.rowcount == 0:
            raise NotFoundError(
                f"couldn't delete the contact {contact_id}: "
                "contact does not exist or wrong author_id"
            )
        logger.info("contact %s deleted by %s", contact_id, author_id)
        return True

    def update(
        self, contact_id: int, author_id: str | None, patch: Mapping[str, Any]
    ) -> bool:
        """
        Change some fields of a contact owned by ``author_id``.

        Only the fields present in ``patch`` are written; the others keep
        their stored value. The write is a single ``UPDATE`` so two
        concurrent patches touching different fields both survive.

        Args:
            contact_id (int): Contact identifier.
            author_id (str): Subject id of the owner.
            patch (Mapping[str, Any]): Any of ``name``, ``email``, ``image``.

        Raises:
            ValidationError: If the patch is empty, names a field that
                cannot change, blanks the name or email, or author_id is
                empty. A blank image counts as absent.
            NotFoundError: If no row matched both id and owner.
            StorageError: If the statement fails.

        Returns:
            bool: ``True`` once the row is updated.
        """
        if not author_id:
            raise ValidationError(
                "you must provide a name, or email, or image, and an author_id"
            )
        unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"these fields can't be updated: {', '.join(unknown)}")
        for field in ("name", "email"):
            if field in patch and patch[field] is not None and not patch[field]:
                raise ValidationError(f"the {field} of a contact can't be empty")
        assignments = build_assignments(
            UPDATABLE_FIELDS, {**patch, "image": patch.get("image") or None}
        )
        if not assignments:
            raise ValidationError(
                "you must provide a name, or email, or image, and an author_id"
            )

        statement = (
            update(models.Contact)
            .where(
                models.Contact.id == contact_id,
                models.Contact.author_id == author_id,
            )
            .values(**assignments)
        )
        try:
            result = self.db.execute(statement)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"couldn't update the contact {contact_id}: {e}") from e

        if result.rowcount == 0:
            raise NotFoundError(
                f"couldn't update the contact {contact_id}: "
                "contact does not exist or wrong author_id"
            )
        logger.info(
            "contact %s updated by %s: %s", contact_id, author_id, sorted(assignments)
        )
        return True

    def get(self, contact_id: int) -> models.Contact:
        """
        Retrieve a contact by id, whoever owns it.

        Raises:
            NotFoundError: If the contact does not exist.
        """
        try:
            contact = self.db.execute(
                select(models.Contact).where(models.Contact.id == contact_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"couldn't get the contact {contact_id}: {e}") from e
        if contact is None:
            raise NotFoundError(f"couldn't get the contact {contact_id}: not found")
        return contact

    def list(
        self,
        order_by: str | None = None,
        author_id: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        cursor: Any = None,
    ) -> list[models.Contact]:
        """
        Retrieve one page of contacts using keyset pagination.

        Rows are sorted by ``order_by`` and resumed after ``cursor``,
        the last value of that same column seen on the previous page.
        The cursor is a single value, so rows sharing the sort value of
        the last row of a page are not returned on the next page.

        Args:
            order_by (str | None): ``name``, ``email``, ``date`` or ``id``;
                anything else sorts by ``id``.
            author_id (str | None): Only return contacts of this owner.
            descending (bool): Sort from largest to smallest.
            limit (int | None): Page size, 100 when absent or 0.
            cursor (Any): Last value seen; omitted for the first page.

        Raises:
            ValidationError: If limit is negative or an id cursor is not
                an integer.
            StorageError: If the query fails.

        Returns:
            list[Contact]: At most ``limit`` contacts.
        """
        key = ORDER_COLUMNS.get(order_by or "", "id")
        column = getattr(models.Contact, key)

        if limit is None or limit == 0:
            limit = DEFAULT_LIMIT
        if limit < 0:
            raise ValidationError(f"limit must not be negative, got {limit}")

        if cursor is None or cursor == "":
            cursor = None if descending else START_CURSORS[key]
        elif key == "id":
            try:
                cursor = int(cursor)
            except (TypeError, ValueError):
                raise ValidationError(f"start must be an integer id, got {cursor!r}")

        statement = select(models.Contact)
        if cursor is not None:
            statement = statement.where(column < cursor if descending else column > cursor)
        statement = statement.where(
            *build_conditions(models.Contact, {"author_id": author_id})
        )
        statement = statement.order_by(column.desc() if descending else column.asc())
        statement = statement.limit(limit)

        try:
            return list(self.db.scalars(statement).all())
        except SQLAlchemyError as e:
            raise StorageError(f"couldn't retrieve contacts: {e}") from e


class UserRepository:
    """Lazily register identity-provider accounts and group them by name."""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, auth0_sub: str) -> bool:
        """Return ``True`` if a user row holds this subject id."""
        try:
            found = self.db.execute(
                select(models.User.id).where(models.User.auth0_sub == auth0_sub)
            ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"couldn't look up the user {auth0_sub}: {e}") from e
        return found is not None

    def create(self, auth0_sub: str, nickname: str) -> int:
        """
        Insert a user.

        Raises:
            StorageError: If the row is rejected, e.g. a duplicate subject id.

        Returns:
            int: Identifier of the new user.
        """
        try:
            result = self.db.execute(
                insert(models.User.__table__).values(
                    auth0_sub=auth0_sub, nickname=nickname
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"couldn't create the user {auth0_sub}: {e}") from e
        logger.info("user %s registered as %r", auth0_sub, nickname)
        return result.inserted_primary_key[0]

    def create_if_not_exists(self, auth0_sub: str, nickname: str) -> dict:
        """
        Register a user on first sight; do nothing afterwards.

        Safe to call on every authenticated request.

        Returns:
            dict: ``auth0_sub`` and ``nickname``, plus ``firstTime: True``
            when the row was just inserted.
        """
        props = {"auth0_sub": auth0_sub, "nickname": nickname}
        if self.exists(auth0_sub):
            return props
        try:
            self.create(auth0_sub, nickname)
        except StorageError as e:
            # Lost an insert race against another request for the same user.
            if isinstance(e.__cause__, IntegrityError) and self.exists(auth0_sub):
                return props
            raise
        return {**props, "firstTime": True}

    def list_identities_by_same_name(self, nickname: str) -> list[Identity]:
        """
        List every account sharing ``nickname``.

        This is best-effort account linking by display name: anyone able
        to pick the same nickname at a provider is linked too.
        """
        try:
            subjects = self.db.scalars(
                select(models.User.auth0_sub)
                .where(models.User.nickname == nickname)
                .order_by(models.User.id)
            ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"couldn't list the identities of {nickname}: {e}") from e
        return [Identity.from_subject(sub) for sub in subjects]
