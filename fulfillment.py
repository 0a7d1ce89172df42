# fulfillment.py
import httpx
from flask import current_app

from core import logger
from errors import FulfillmentError
from pricing import field


def print_job_payload(order):
    items = [item for item in order.items if not field(item, "is_free")]
    return {
        "contact_email": order.email,
        "external_id": f"bookhaven-{order.id}",
        "line_items": [
            {
                "external_id": item.book_id or f"item-{index}",
                "printable_normalization": {
                    "cover": {"source_url": item.cover_url or ""},
                    "interior": {"source_url": item.interior_url or ""},
                },
                "quantity": item.quantity or 1,
            }
            for index, item in enumerate(items)
        ],
        "shipping_address": {
            "name": order.buyer_name,
            "street1": order.address,
            "city": order.city,
            "postcode": order.zip_code,
            "country_code": order.country,
        },
    }


def forward_to_print(order):
    """Submit the order's print items; returns the print job id or None.

    Orders with nothing to print, and installs without a Lulu token, are
    skipped.
    """
    payload = print_job_payload(order)
    if not payload["line_items"]:
        logger.info("order %s has no print items; nothing to forward", order.id)
        return None
    token = current_app.config.get("LULU_API_TOKEN")
    if not token:
        logger.warning("LULU_API_TOKEN not set; order %s not forwarded for printing", order.id)
        return None
    try:
        resp = httpx.post(
            current_app.config["LULU_API_URL"],
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
            timeout=30,
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("print forwarding failed for order %s: %s", order.id, e)
        raise FulfillmentError("Failed to forward order for printing", order_id=order.id)
    job_id = str(resp.json().get("id", ""))
    logger.info("order %s forwarded for printing (job %s)", order.id, job_id)
    return job_id
