"""
Membership Providers

Who pays together with whom is decided outside the ledger. The engine only
needs "a non-empty set of participant ids for this period"; these providers
turn the two relations households actually use into that set:

- Selected partners: owners who shared their ledger with a viewer, and whom
  the viewer has ticked for combined payment
- Accepted partnership: a single two-person partnership accepted by both sides

Consent and invitation workflows are NOT handled here. The providers are
point-in-time views over whatever relation data the caller hands them.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field


class MembershipProvider(ABC):
    """Produces the participant list for group reads and settlements."""

    @abstractmethod
    async def participants_for(self, owner_id: str) -> list[str]:
        """
        Participants for a group action started by owner_id.

        The owner is always first and always present.
        """
        pass


class SharedAccessGrant(BaseModel):
    """An owner letting a viewer see (and optionally combine) their ledger."""
    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(..., min_length=1)
    viewer_id: str = Field(..., min_length=1)
    is_selected: bool = Field(
        default=False,
        description="Viewer has chosen to combine this owner's obligation with theirs"
    )


class PartnershipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Partnership(BaseModel):
    """A two-person partnership invitation and its state."""
    model_config = ConfigDict(frozen=True)

    user1_id: str = Field(..., min_length=1)
    user2_id: str = Field(..., min_length=1)
    status: PartnershipStatus = PartnershipStatus.PENDING

    def other(self, owner_id: str) -> str:
        return self.user2_id if owner_id == self.user1_id else self.user1_id

    def involves(self, owner_id: str) -> bool:
        return owner_id in (self.user1_id, self.user2_id)


class SelectedPartnersProvider(MembershipProvider):
    """Owner plus every sharer the owner has selected, in grant order."""

    def __init__(self, grants: Iterable[SharedAccessGrant]):
        self._grants = list(grants)

    async def participants_for(self, owner_id: str) -> list[str]:
        participants = [owner_id]
        for grant in self._grants:
            if (
                grant.viewer_id == owner_id
                and grant.is_selected
                and grant.owner_id not in participants
            ):
                participants.append(grant.owner_id)
        return participants


class AcceptedPartnershipProvider(MembershipProvider):
    """Owner plus their accepted partner, if any."""

    def __init__(self, partnerships: Iterable[Partnership]):
        self._partnerships = list(partnerships)

    async def participants_for(self, owner_id: str) -> list[str]:
        for partnership in self._partnerships:
            if (
                partnership.status == PartnershipStatus.ACCEPTED
                and partnership.involves(owner_id)
            ):
                partner = partnership.other(owner_id)
                if partner != owner_id:
                    return [owner_id, partner]
        return [owner_id]
