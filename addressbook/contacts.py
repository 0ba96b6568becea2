"""Contact routes for the address book API.

Paths follow the ``/contacts/<verb>`` shape the browser client calls.
Every route answers with the ``{success, result}`` envelope.
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from . import schemas
from .auth import AuthenticatedUser, get_current_user, get_optional_user
from .core import get_settings
from .crud import ContactRepository
from .database import get_db
from .errors import ContactsError, NotFoundError
from .uploads import discard_image, store_image

router = APIRouter(prefix="/contacts", tags=["contacts"])


def get_contact_repository(db: Session = Depends(get_db)) -> ContactRepository:
    """Dependency providing a repository bound to the request session."""
    return ContactRepository(db)


def serialize(contact) -> dict:
    """Convert a Contact row into a JSON-ready dict."""
    return schemas.ContactOut.model_validate(contact).model_dump()


def stored_image(repo: ContactRepository, contact_id: int) -> str | None:
    """Return the image filename a contact currently points to, if any."""
    try:
        return repo.get(contact_id).image
    except NotFoundError:
        return None


@router.get("/new", response_model=schemas.Envelope)
def create_contact_from_query(
    name: str | None = None,
    email: str | None = None,
    repo: ContactRepository = Depends(get_contact_repository),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Create a contact from query parameters, without an image.

    Returns:
        Envelope: Identifier of the new contact.
    """
    contact_id = repo.create(name, email, current_user.subject_id)
    return schemas.Envelope(result=contact_id)


@router.post("/new", response_model=schemas.Envelope)
def create_contact(
    name: str | None = Form(None),
    email: str | None = Form(None),
    image: UploadFile | None = File(None),
    repo: ContactRepository = Depends(get_contact_repository),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Create a contact owned by the current user from a multipart form.

    Args:
        name (str | None): Contact name.
        email (str | None): Contact email.
        image (UploadFile | None): Optional picture.
        repo (ContactRepository): Contact repository.
        current_user (AuthenticatedUser): Verified caller.

    Returns:
        Envelope: Identifier of the new contact.
    """
    directory = get_settings().UPLOAD_DIR
    filename = store_image(image, directory)
    try:
        contact_id = repo.create(name, email, current_user.subject_id, image=filename)
    except ContactsError:
        discard_image(filename, directory)
        raise
    return schemas.Envelope(result=contact_id)


@router.get("/get/{contact_id}", response_model=schemas.Envelope)
def get_contact(
    contact_id: int,
    repo: ContactRepository = Depends(get_contact_repository),
):
    """Retrieve any contact by id; reading needs no login."""
    return schemas.Envelope(result=serialize(repo.get(contact_id)))


@router.get("/delete/{contact_id}", response_model=schemas.Envelope)
def delete_contact(
    contact_id: int,
    repo: ContactRepository = Depends(get_contact_repository),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Delete a contact owned by the current user.

    Someone else's contact is reported as not found. The contact's image
    is removed with it.
    """
    previous = stored_image(repo, contact_id)
    result = repo.delete(contact_id, current_user.subject_id)
    discard_image(previous, get_settings().UPLOAD_DIR)
    return schemas.Envelope(result=result)


@router.get("/update/{contact_id}", response_model=schemas.Envelope)
def update_contact_from_query(
    contact_id: int,
    name: str | None = None,
    email: str | None = None,
    repo: ContactRepository = Depends(get_contact_repository),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Change the name and/or email of a contact from query parameters."""
    patch = {"name": name, "email": email}
    return schemas.Envelope(
        result=repo.update(contact_id, current_user.subject_id, patch)
    )


@router.post("/update/{contact_id}", response_model=schemas.Envelope)
def update_contact(
    contact_id: int,
    name: str | None = Form(None),
    email: str | None = Form(None),
    image: UploadFile | None = File(None),
    repo: ContactRepository = Depends(get_contact_repository),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Partially update a contact owned by the current user.

    Only fields provided in the form are changed. A new image replaces
    the stored file; a rejected update leaves the disk untouched.

    Returns:
        Envelope: ``True`` once updated.
    """
    directory = get_settings().UPLOAD_DIR
    filename = store_image(image, directory)
    previous = stored_image(repo, contact_id) if filename else None
    patch = {"name": name, "email": email, "image": filename}
    try:
        result = repo.update(contact_id, current_user.subject_id, patch)
    except ContactsError:
        discard_image(filename, directory)
        raise
    if previous != filename:
        discard_image(previous, directory)
    return schemas.Envelope(result=result)


@router.get("/list", response_model=schemas.Envelope)
def list_contacts(
    order: str | None = None,
    desc: bool = False,
    limit: int | None = None,
    start: str | None = None,
    author: str | None = None,
    mine: bool = False,
    repo: ContactRepository = Depends(get_contact_repository),
    current_user: AuthenticatedUser | None = Depends(get_optional_user),
):
    """
    Retrieve one page of contacts.

    Args:
        order (str | None): Sort column: name, email, date or id.
        desc (bool): Sort in descending order.
        limit (int | None): Page size, 100 by default.
        start (str | None): Last value of the sort column already seen.
        author (str | None): Only contacts created by this subject id.
        mine (bool): Only contacts created by the caller.
        repo (ContactRepository): Contact repository.
        current_user (AuthenticatedUser | None): Caller, if logged in.

    Raises:
        HTTPException: If ``mine`` is requested anonymously.

    Returns:
        Envelope: List of contacts.
    """
    if mine:
        if current_user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        author = current_user.subject_id

    contacts = repo.list(
        order_by=order,
        author_id=author,
        descending=desc,
        limit=limit,
        cursor=start,
    )
    return schemas.Envelope(result=[serialize(c) for c in contacts])
