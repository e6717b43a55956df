"""
Webhook system for sending order event notifications.

Allows external systems to subscribe to order events (created, status_changed).
Delivery is fire-and-forget: failures are logged and never reach the caller.
"""
import os
import logging
import httpx
from typing import Dict, Any
import asyncio

logger = logging.getLogger(__name__)

# Webhook URLs (in production, these would be stored in a database)
WEBHOOK_URLS = os.getenv("WEBHOOK_URLS", "").split(",")
WEBHOOK_URLS = [url.strip() for url in WEBHOOK_URLS if url.strip()]
WEBHOOK_TIMEOUT = float(os.getenv("WEBHOOK_TIMEOUT", "5.0"))


async def send_webhook(event_type: str, data: Dict[str, Any]) -> None:
    """
    Send webhook notifications to all registered URLs.

    Args:
        event_type: Type of event (e.g., "order.created", "order.status_changed")
        data: Event data payload
    """
    if not WEBHOOK_URLS:
        return

    payload = {
        "event": event_type,
        "data": data,
        "timestamp": data.get("updated_at") or data.get("created_at", "")
    }

    async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT) as client:
        tasks = []
        for url in WEBHOOK_URLS:
            tasks.append(send_single_webhook(client, url, payload))

        # Send all webhooks concurrently
        await asyncio.gather(*tasks, return_exceptions=True)


async def send_single_webhook(client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> None:
    """
    Send a webhook to a single URL.

    Args:
        client: HTTP client
        url: Webhook URL
        payload: Event payload
    """
    try:
        response = await client.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json"}
        )

        if response.status_code >= 400:
            logger.warning(f"Webhook failed for {url}: HTTP {response.status_code}")
    except httpx.HTTPError as e:
        logger.warning(f"Webhook error for {url}: {str(e)}")


def _schedule(event_type: str, data: Dict[str, Any]) -> None:
    if not WEBHOOK_URLS:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug(f"No running event loop, skipping {event_type} webhook")
        return
    loop.create_task(send_webhook(event_type, data))


def notify_order_created(order_data: Dict[str, Any]) -> None:
    """
    Notify that an order was created.

    Args:
        order_data: Order data
    """
    _schedule("order.created", order_data)


def notify_order_status_changed(order_data: Dict[str, Any], old_status: str) -> None:
    """
    Notify that an order status changed.

    Args:
        order_data: Order data after the change
        old_status: Previous status
    """
    data = {
        "order_id": order_data["id"],
        "old_status": old_status,
        "new_status": order_data["status"],
        "updated_at": order_data.get("updated_at"),
    }
    _schedule("order.status_changed", data)
