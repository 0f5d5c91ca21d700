"""Channel-level notification models.

What a channel sender needs to deliver one message: where it goes
(Recipient), what it says (RenderedMessage) and which notification it
belongs to (DeliveryMetadata). Content is rendered before it reaches a
channel; channels never decide business content.

Uses Pydantic BaseModel for runtime validation and serialization.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Recipient(BaseModel):
    """Contact data for one user, resolved per channel.

    Values are stored as given. Each channel validates the field it uses
    (an e-mail address, an E.164 number, device tokens) and turns an
    invalid value into a fatal outcome.

    Attributes:
        user_id: Owner of the contact data (for preferences and rate limits)
        email: E-mail address
        phone: Phone number, expected in E.164 format (+15551234567)
        device_tokens: Push tokens registered by the user's devices

    Example:
        recipient = Recipient(user_id="u-1", phone="+15551234567")
    """

    user_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    device_tokens: List[str] = Field(default_factory=list)


class RenderedMessage(BaseModel):
    """Final content handed to a channel.

    Attributes:
        subject: Subject line (email) or title (push, in-app)
        body: Plain text body
        data: Structured values forwarded to push payloads and inbox entries
    """

    subject: str = ""
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)


class DeliveryMetadata(BaseModel):
    """Identifies the notification a send belongs to, for logs and policy."""

    notification_id: str
    notification_type: str
    channel: str
    user_id: Optional[str] = None
    business_ref: Optional[str] = None
    priority: int = 3
    attempt: int = 1


class InboxEntry(BaseModel):
    """User-visible in-app notification written by the database channel."""

    id: str
    user_id: str
    notification_id: str
    notification_type: str
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    read_at: Optional[datetime] = None
