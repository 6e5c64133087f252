"""
Pydantic schemas for stored records and API request/response models.

Field names are snake_case in Python and camelCase on the wire and in
the key-value store.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )


class ContentType(str, Enum):
    """Content types scanned by the admin pending listing, in order."""

    CHEATSHEET = "cheatsheet"
    TEMPLATE = "template"
    TESTCASE = "testcase"
    TESTSCRIPT = "testscript"
    BOILERPLATE = "boilerplate"


KNOWN_TYPES: tuple[str, ...] = tuple(t.value for t in ContentType)


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# Stored records
class Submission(CamelModel):
    """User-contributed content record, stored under its id."""

    id: str = Field(..., description="submission_<type>_<epochMillis>")
    type: str = Field(..., description="Content type")
    data: Any = Field(..., description="Opaque content payload")
    submitted_by: str = Field(
        default="Anonymous",
        description="Free-text attribution"
    )
    submitted_at: datetime = Field(..., description="Creation timestamp")
    status: SubmissionStatus = Field(
        default=SubmissionStatus.PENDING,
        description="Review status"
    )
    reviewed_by: Optional[str] = Field(
        default=None,
        description="Email of the reviewing admin"
    )
    reviewed_at: Optional[datetime] = Field(
        default=None,
        description="Review timestamp"
    )

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PendingIndex(BaseModel):
    submissions: list[str] = Field(default_factory=list)


class ApprovedIndex(CamelModel):
    """
    Published payloads of a content type, in approval order.

    submission_ids[i] is the record that published items[i]. Only items
    are served publicly.
    """

    items: list[Any] = Field(default_factory=list)
    submission_ids: list[str] = Field(default_factory=list)

    def tracks_sources(self) -> bool:
        # Indices written before ids were recorded cannot be repaired
        return len(self.submission_ids) == len(self.items)

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# Identity
class Identity(BaseModel):
    """Authenticated caller as resolved by the identity provider."""

    id: str = Field(..., description="Identity provider user id")
    email: Optional[str] = Field(default=None, description="User email")
    name: Optional[str] = Field(default=None, description="Display name")
    is_admin: bool = Field(default=False, description="Admin capability")


# Requests
class SubmissionCreateRequest(CamelModel):
    """Request body for a public submission."""

    type: Optional[str] = Field(default=None, description="Content type")
    data: Any = Field(default=None, description="Content payload")
    submitted_by: Optional[str] = Field(
        default=None,
        description="Attribution, defaults to Anonymous"
    )


class ReviewRequest(CamelModel):
    """Request body for an admin review."""

    submission_id: Optional[str] = Field(
        default=None,
        description="Submission identifier"
    )
    action: Optional[str] = Field(
        default=None,
        description="approve or reject"
    )


class AdminSignupRequest(CamelModel):
    """Request body for admin account provisioning."""

    email: Optional[str] = Field(default=None, description="Admin email")
    password: Optional[str] = Field(default=None, description="Password")
    name: Optional[str] = Field(default=None, description="Display name")
    admin_secret: Optional[str] = Field(
        default=None,
        description="Shared admin signup secret"
    )


# Responses
class SubmissionCreateResponse(CamelModel):
    success: bool = True
    submission_id: str


class PendingListResponse(CamelModel):
    submissions: list[Submission]


class ReviewResponse(CamelModel):
    success: bool = True
    submission: Submission


class SubmissionDetailResponse(CamelModel):
    submission: Submission


class ApprovedListResponse(CamelModel):
    items: list[Any]


class ReconcileResponse(CamelModel):
    success: bool = True
    pending: dict[str, int]


class AdminSignupResponse(CamelModel):
    success: bool = True
    user: dict[str, Any]


class HealthResponse(CamelModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(..., description="Server time")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Human-readable error message")
