"""User approval records."""

from typing import Optional

from pydantic import Field

from finance_tracker.models.finance import OwnedRecord


class UserApproval(OwnedRecord):
    """
    Access state of a signed-in user.

    New users start unapproved; an admin has to approve them before they
    can see any finance data. owner_id is the user's own identity.
    """

    email: str = Field(
        ...,
        min_length=3,
        max_length=320,
    )
    name: Optional[str] = Field(
        default=None,
        max_length=200,
    )
    approved: bool = False
    is_admin: bool = False
