"""Payment webhook — verify, de-duplicate, and provision an API key."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from config.settings import Settings
from keygate.api.deps import get_app_settings, get_provisioner
from keygate.api.models.schemas import ErrorOut, WebhookAck
from keygate.billing.signature import verify_webhook
from keygate.core.constants import SIGNATURE_HEADER
from keygate.saas.provisioner import Provisioner

router = APIRouter(tags=["webhook"])


@router.post(
    "/webhook",
    response_model=WebhookAck,
    responses={400: {"model": ErrorOut}, 500: {"model": ErrorOut}},
)
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    provisioner: Provisioner = Depends(get_provisioner),
) -> WebhookAck:
    """Handle a signed provider notification.

    The raw body is verified before it is parsed. Redelivered events are
    acknowledged with 200 so the provider stops retrying.
    """
    payload = await request.body()
    event = verify_webhook(
        payload,
        request.headers.get(SIGNATURE_HEADER),
        settings.stripe_webhook_secret.get_secret_value(),
        tolerance=settings.webhook_tolerance_seconds,
    )
    result = await provisioner.handle(event)
    return WebhookAck(received=True, outcome=result.outcome.value)
