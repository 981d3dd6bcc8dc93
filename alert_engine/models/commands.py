"""
Typed commands produced by the event ingestor.

Inbound bus payloads are untyped key/value maps. The ingestor validates them
once at the boundary and turns each one into exactly one of these commands;
the alert engine never sees a raw map.

Models:
    RaiseNotice: A valid notice to squash or promote
    Dismiss: Request to dismiss an alert by id
    Rejected: Malformed payload, dropped without raising
    Command: Union of the three
"""

from typing import Optional, Union

from pydantic import BaseModel, Field

from alert_engine.models.notices import Notice


class RaiseNotice(BaseModel):
    """A validated notice ready for the alert engine."""

    model_config = {"frozen": True}

    notice: Notice = Field(
        ...,
        description="The normalized notice",
    )


class Dismiss(BaseModel):
    """
    Request to dismiss an alert.

    ``dismissed_by`` is carried as received; the engine ignores requests
    where it is missing or empty.
    """

    model_config = {"frozen": True}

    alert_id: str = Field(
        ...,
        description="Id of the alert to dismiss",
        min_length=1,
    )
    dismissed_by: Optional[str] = Field(
        default=None,
        description="Who is dismissing the alert",
    )


class Rejected(BaseModel):
    """A payload that could not be normalized."""

    model_config = {"frozen": True}

    reason: str = Field(
        ...,
        description="Why the payload was rejected",
    )
    channel: Optional[str] = Field(
        default=None,
        description="Channel the payload arrived on",
    )


Command = Union[RaiseNotice, Dismiss, Rejected]
