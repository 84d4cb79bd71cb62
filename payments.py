"""
Thin Stripe PaymentIntents client over the REST API.

Stripe takes form-encoded bodies and the secret key as the basic-auth username.
Metadata values must be strings.
"""
import logging

import requests
from fastapi import HTTPException

import config

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 15


def _request(method: str, path: str, data=None) -> dict:
    if not config.STRIPE_SECRET_KEY:
        raise HTTPException(status_code=500, detail="Payment gateway not configured")
    try:
        response = requests.request(
            method,
            f"{config.STRIPE_API_BASE}{path}",
            data=data,
            auth=(config.STRIPE_SECRET_KEY, ""),
            timeout=TIMEOUT_SECONDS,
        )
    except requests.exceptions.RequestException as exc:
        logger.error("Stripe request failed: %s", exc)
        raise HTTPException(status_code=502, detail="Payment gateway unavailable")
    if response.status_code >= 400:
        try:
            message = response.json().get("error", {}).get("message", "Payment gateway error")
        except ValueError:
            # proxies in front of the gateway answer with HTML
            message = "Payment gateway error"
        logger.error("Stripe %s %s -> %s: %s", method, path, response.status_code, message)
        raise HTTPException(status_code=502, detail=message)
    try:
        return response.json()
    except ValueError:
        logger.error("Stripe %s %s returned a non-JSON body", method, path)
        raise HTTPException(status_code=502, detail="Payment gateway error")


def create_payment_intent(amount: int, currency: str, metadata: dict) -> dict:
    data = {"amount": amount, "currency": currency}
    for key, value in metadata.items():
        data[f"metadata[{key}]"] = str(value)
    intent = _request("POST", "/payment_intents", data=data)
    logger.info("Created payment intent %s for %s %s", intent.get("id"), amount, currency)
    return intent


def retrieve_payment_intent(intent_id: str) -> dict:
    return _request("GET", f"/payment_intents/{intent_id}")
