#!/usr/bin/env python3
"""Send a signed checkout.session.completed event to a running Keygate API.

Usage:
    python scripts/replay_webhook.py buyer@example.com
    python scripts/replay_webhook.py buyer@example.com --event-id evt_123 --url http://localhost:8000
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import httpx
from uuid_extensions import uuid7

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.settings import get_settings
from keygate.billing.signature import sign_payload
from keygate.core.constants import CHECKOUT_COMPLETED, SIGNATURE_HEADER
from keygate.core.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_event(email: str, event_id: str, event_type: str) -> bytes:
    event = {
        "id": event_id,
        "type": event_type,
        "data": {"object": {"id": f"cs_{uuid7().hex}", "customer_email": email}},
    }
    return json.dumps(event).encode()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a signed payment webhook locally")
    parser.add_argument("email", help="Customer email the key is issued to")
    parser.add_argument("--event-id", default=None, help="Event id (random if omitted)")
    parser.add_argument("--type", default=CHECKOUT_COMPLETED, help="Event type")
    parser.add_argument("--url", default="http://localhost:8000", help="API base URL")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    setup_logging()
    settings = get_settings()

    secret = settings.stripe_webhook_secret.get_secret_value()
    if not secret:
        log.error("webhook_secret_missing", hint="set STRIPE_WEBHOOK_SECRET")
        return 1

    event_id = args.event_id or f"evt_{uuid7().hex}"
    payload = build_event(args.email, event_id, args.type)
    try:
        resp = httpx.post(
            f"{args.url.rstrip('/')}/api/webhook",
            content=payload,
            headers={SIGNATURE_HEADER: sign_payload(payload, secret)},
            timeout=10.0,
        )
    except httpx.HTTPError as exc:
        log.error("webhook_replay_failed", error=str(exc))
        return 1

    log.info("webhook_replayed", event_id=event_id, status=resp.status_code, body=resp.text)
    return 0 if resp.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
