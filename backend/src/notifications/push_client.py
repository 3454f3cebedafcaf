"""
Web Push Notification Client

Handles browser push notifications using the Web Push protocol with:
- VAPID authentication
- Payload size capping (free-text fields are truncated to fit)
- Failure classification: endpoint gone (404/410) vs transient/config errors

The client is stateless: it never touches stored subscriptions. Deleting an
expired subscription is the orchestrator's job.
"""

import asyncio
import json
from typing import Any, Optional

import structlog

from src.models.notification import PushSubscription, TriggerOutcomeEvent
from src.notifications.exceptions import (
    ConfigurationError,
    PushDeliveryError,
    SubscriptionExpired,
)

logger = structlog.get_logger(__name__)

# Status codes push services use for unsubscribed or expired endpoints
GONE_STATUS_CODES = frozenset({404, 410})

# Free-text fields shortened, in order, when a payload is over the size cap
TRUNCATABLE_FIELDS: tuple[tuple[str, ...], ...] = (
    ("body",),
    ("data", "error"),
    ("data", "details"),
    ("data", "callbackUrl"),
    ("data", "callbackName"),
    ("title",),
)
TRUNCATION_MARKER = "..."


class PushClient:
    """
    Web Push client for browser push notifications.

    Uses the pywebpush library and VAPID keys for authentication.
    """

    def __init__(
        self,
        vapid_private_key: Optional[str] = None,
        vapid_claims_email: Optional[str] = None,
        test_mode: bool = False,
        timeout: float = 10.0,
        max_payload_bytes: int = 3072,
    ):
        """
        Initialize push client.

        Args:
            vapid_private_key: VAPID private key for authentication
            vapid_claims_email: Contact for VAPID claims (e.g., mailto:admin@example.com)
            test_mode: If True, log instead of sending
            timeout: Push service request timeout in seconds
            max_payload_bytes: Encoded payload size cap
        """
        self.vapid_private_key = vapid_private_key
        self.vapid_claims_email = vapid_claims_email
        self.test_mode = test_mode
        self.timeout = timeout
        self.max_payload_bytes = max_payload_bytes

        if not test_mode and not self.configured:
            logger.warning("VAPID keys not configured, push delivery disabled")

    @property
    def configured(self) -> bool:
        return bool(self.vapid_private_key and self.vapid_claims_email)

    async def send_push(self, subscription: PushSubscription, payload: dict[str, Any]) -> None:
        """
        Send a push message to a subscription.

        Args:
            subscription: Stored push subscription
            payload: JSON-serializable notification payload

        Raises:
            SubscriptionExpired: Push service answered 404/410
            PushDeliveryError: Any other delivery failure
            ConfigurationError: VAPID keys are missing
        """
        data = self._encode_payload(payload)

        if self.test_mode:
            logger.info(
                "TEST MODE: Push notification would be sent",
                endpoint=self._mask_endpoint(subscription.endpoint),
                title=payload.get("title"),
            )
            return

        if not self.configured:
            raise ConfigurationError("VAPID keys are not configured")

        from pywebpush import WebPushException, webpush

        try:
            await asyncio.to_thread(
                webpush,
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": {
                        "p256dh": subscription.p256dh_key,
                        "auth": subscription.auth_key,
                    },
                },
                data=data,
                vapid_private_key=self.vapid_private_key,
                vapid_claims={"sub": self.vapid_claims_email},
                timeout=self.timeout,
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None

            if status_code in GONE_STATUS_CODES:
                logger.warning(
                    "Push subscription expired",
                    endpoint=self._mask_endpoint(subscription.endpoint),
                    status_code=status_code,
                )
                raise SubscriptionExpired(str(e), status_code=status_code) from e

            raise PushDeliveryError(str(e), status_code=status_code) from e
        except Exception as e:
            # Network errors and malformed subscription keys
            raise PushDeliveryError(str(e)) from e

        logger.info(
            "Push notification sent successfully",
            endpoint=self._mask_endpoint(subscription.endpoint),
            user_id=str(subscription.user_id),
        )

    def build_outcome_payload(self, event: TriggerOutcomeEvent) -> dict[str, Any]:
        """
        Create the push payload for a trigger outcome.

        See: https://developer.mozilla.org/en-US/docs/Web/API/ServiceWorkerRegistration/showNotification
        """
        if event.success:
            title = "✅ Webhook Triggered"
            body = f"{event.callback_name} executed successfully"
            if event.status_code is not None:
                body += f" ({event.status_code}"
                body += f", {event.response_time}ms)" if event.response_time is not None else ")"
        else:
            title = "❌ Webhook Failed"
            body = f"{event.callback_name} failed"
            if event.error:
                body += f": {event.error}"

        return {
            "title": title,
            "body": body,
            "icon": "/icons/icon-192x192.png",
            "badge": "/icons/badge-72x72.png",
            "tag": f"callback-{event.callback_id}",
            "data": {
                "callbackId": str(event.callback_id),
                "callbackName": event.callback_name,
                "callbackUrl": event.callback_url,
                "success": event.success,
                "statusCode": event.status_code,
                "responseTime": event.response_time,
                "error": event.error,
                "details": event.details,
                "triggeredAt": event.triggered_at.isoformat(),
                "url": "/dashboard/logs",
            },
            "requireInteraction": not event.success,  # Sticky for failures
        }

    def _encode_payload(self, payload: dict[str, Any]) -> str:
        """
        Serialize a payload, truncating free-text fields to fit the size cap.

        Raises:
            PushDeliveryError: Payload still too large after truncation
        """
        encoded = json.dumps(payload)
        if len(encoded.encode("utf-8")) <= self.max_payload_bytes:
            return encoded

        original_size = len(encoded.encode("utf-8"))
        payload = json.loads(encoded)

        for path in TRUNCATABLE_FIELDS:
            overflow = len(json.dumps(payload).encode("utf-8")) - self.max_payload_bytes
            if overflow <= 0:
                break

            container: Any = payload
            for key in path[:-1]:
                container = container.get(key) if isinstance(container, dict) else None
            if not isinstance(container, dict):
                continue

            value = container.get(path[-1])
            if not isinstance(value, str) or not value:
                continue

            # Each removed character frees at least one encoded byte
            keep = len(value) - overflow - len(TRUNCATION_MARKER)
            if keep > 0:
                container[path[-1]] = value[:keep] + TRUNCATION_MARKER
            elif len(value) > len(TRUNCATION_MARKER):
                container[path[-1]] = TRUNCATION_MARKER
            else:
                # The marker would make a short value longer
                container[path[-1]] = ""

        encoded = json.dumps(payload)
        size = len(encoded.encode("utf-8"))
        if size > self.max_payload_bytes:
            raise PushDeliveryError(
                f"Push payload is {size} bytes after truncation, limit is {self.max_payload_bytes}"
            )

        logger.debug(
            "Push payload truncated",
            original_bytes=original_size,
            truncated_bytes=size,
        )
        return encoded

    def _mask_endpoint(self, endpoint: str) -> str:
        """Mask push endpoint for logging (PII protection)."""
        if len(endpoint) > 40:
            return endpoint[:20] + "..." + endpoint[-10:]
        return endpoint

    @staticmethod
    def generate_vapid_keys() -> tuple[str, str]:
        """
        Generate VAPID key pair for push authentication.

        Returns:
            Tuple of (private_key, public_key) as base64url strings. The
            public key is the uncompressed point browsers expect as
            ``applicationServerKey``.
        """
        from cryptography.hazmat.primitives import serialization
        from py_vapid import Vapid
        from py_vapid.utils import b64urlencode

        vapid = Vapid()
        vapid.generate_keys()

        private_value = vapid.private_key.private_numbers().private_value
        private_key = b64urlencode(private_value.to_bytes(32, "big"))
        public_key = b64urlencode(
            vapid.public_key.public_bytes(
                serialization.Encoding.X962,
                serialization.PublicFormat.UncompressedPoint,
            )
        )

        return (private_key, public_key)
