"""User-related routes for the address book API."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import schemas
from .auth import AuthenticatedUser, get_current_user
from .contacts import serialize
from .crud import ContactRepository, UserRepository
from .database import get_db

router = APIRouter(tags=["users"])


@router.get("/mypage", response_model=schemas.Envelope)
def read_my_page(
    order: str | None = None,
    desc: bool = False,
    limit: int | None = None,
    start: str | None = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Retrieve the caller's profile and a page of the contacts they created.

    ``identities`` lists every provider account sharing the caller's
    nickname.

    Args:
        order (str | None): Sort column for the contacts.
        desc (bool): Sort in descending order.
        limit (int | None): Page size.
        start (str | None): Last value of the sort column already seen.
        current_user (AuthenticatedUser): Verified caller.
        db (Session): Database session.

    Returns:
        Envelope: ``MyPageOut`` payload.
    """
    identities = UserRepository(db).list_identities_by_same_name(current_user.nickname)
    contacts = ContactRepository(db).list(
        order_by=order,
        author_id=current_user.subject_id,
        descending=desc,
        limit=limit,
        cursor=start,
    )
    page = schemas.MyPageOut(
        auth0_sub=current_user.subject_id,
        nickname=current_user.nickname,
        firstTime=current_user.first_time,
        identities=[
            schemas.IdentityOut(providerName=i.provider_name, subjectId=i.subject_id)
            for i in identities
        ],
        contacts=[serialize(c) for c in contacts],
    )
    return schemas.Envelope(result=page.model_dump())
