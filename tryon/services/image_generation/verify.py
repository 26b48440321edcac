"""
Gemini API key verification: a minimal text-only generateContent call per key.
"""
import logging

import httpx

from tryon.core.config import Settings, settings as default_settings
from tryon.core.logging import mask_key
from tryon.services.image_generation.failure_types import is_invalid_key_message
from tryon.services.key_pool import KeyPool, KeyStatus

logger = logging.getLogger(__name__)


def verify_api_key(
    api_key: str,
    settings: Settings | None = None,
    client: httpx.Client | None = None,
) -> bool:
    """
    True when Gemini accepts the key.
    Any error body (quota, billing, invalid key) or transport failure counts as not verified.
    """
    settings = settings or default_settings
    endpoint = settings.gemini_api_endpoint.rstrip("/")
    url = f"{endpoint}/v1beta/models/{settings.gemini_image_model}:generateContent"
    payload = {"contents": [{"parts": [{"text": "test"}]}]}

    try:
        if client is not None:
            resp = client.post(url, params={"key": api_key}, json=payload)
        else:
            with httpx.Client(timeout=settings.gemini_timeout) as own_client:
                resp = own_client.post(url, params={"key": api_key}, json=payload)
    except httpx.TransportError as e:
        logger.warning(
            "api_key_verification_failed",
            extra={"key_hint": mask_key(api_key), "error": type(e).__name__},
        )
        return False

    if resp.is_success:
        return True

    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    message = error.get("message") if isinstance(error, dict) else None
    if is_invalid_key_message(message):
        logger.info("api_key_rejected", extra={"key_hint": mask_key(api_key)})
    else:
        logger.info(
            "api_key_verification_error",
            extra={"key_hint": mask_key(api_key), "http_status": resp.status_code, "error": message},
        )
    return False


def verify_all_keys(
    pool: KeyPool,
    settings: Settings | None = None,
    client: httpx.Client | None = None,
) -> dict[str, KeyStatus]:
    """
    Verify every record not already valid and store the outcome on it.
    Valid records are reported as they are without a request.
    """
    outcome: dict[str, KeyStatus] = {}
    for record in pool.records():
        if record.status == KeyStatus.VALID:
            outcome[record.value] = KeyStatus.VALID
            continue
        if verify_api_key(record.value, settings=settings, client=client):
            pool.report_valid(record.value)
            outcome[record.value] = KeyStatus.VALID
        else:
            pool.report_invalid(record.value)
            outcome[record.value] = KeyStatus.INVALID
    return outcome
