"""
Access policy.

Pure decision functions: no I/O, never raise. Callers turn a False into the
response appropriate for the route (403 for books, 404 for reviews).
"""

from typing import Any, Mapping, Optional

from library_api.models import Actor, Role


def _is_admin(actor: Optional[Actor]) -> bool:
    return actor is not None and actor.role == Role.ADMIN


def _owner_id(review: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not review:
        return None
    owner = review.get("user")
    if isinstance(owner, Mapping):
        owner = owner.get("id")
    return str(owner) if owner is not None else None


def can_create_book(actor: Optional[Actor]) -> bool:
    return _is_admin(actor)


def can_modify_book(actor: Optional[Actor]) -> bool:
    # Books have no owner; the role alone decides.
    return _is_admin(actor)


def can_delete_book(actor: Optional[Actor]) -> bool:
    return _is_admin(actor)


def can_create_review(actor: Optional[Actor], book: Optional[Mapping[str, Any]]) -> bool:
    """Any authenticated actor may review a book that exists."""
    return actor is not None and book is not None


def can_modify_review(actor: Optional[Actor], review: Optional[Mapping[str, Any]]) -> bool:
    """Only the author may edit a review; admins get no bypass here."""
    return actor is not None and _owner_id(review) == actor.id


def can_delete_review(actor: Optional[Actor], review: Optional[Mapping[str, Any]]) -> bool:
    """The author or any admin may delete a review."""
    if actor is None or review is None:
        return False
    return _is_admin(actor) or _owner_id(review) == actor.id
