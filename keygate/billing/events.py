"""Pydantic models for the parts of a payment webhook event we read."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from keygate.core.constants import CHECKOUT_COMPLETED


class CustomerDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None


class CheckoutSession(BaseModel):
    """The ``data.object`` of a ``checkout.session.completed`` event."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    customer_email: str | None = None
    customer_details: CustomerDetails | None = None

    @property
    def contact_email(self) -> str | None:
        """Prefer the email passed at checkout, then the one the customer typed."""
        if self.customer_email:
            return self.customer_email.strip() or None
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email.strip() or None
        return None


class EventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    """A verified provider notification: event id, type tag, and payload."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    created: int | None = None
    livemode: bool = False
    data: EventData = Field(default_factory=EventData)

    @property
    def is_checkout_completed(self) -> bool:
        return self.type == CHECKOUT_COMPLETED

    def checkout_session(self) -> CheckoutSession:
        """Parse ``data.object`` as a checkout session (raises ValidationError)."""
        return CheckoutSession.model_validate(self.data.object)
