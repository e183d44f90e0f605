"""
Paymob transaction callback signatures.

Paymob signs transaction callbacks with HMAC-SHA512 over a fixed list of
transaction fields concatenated in lexicographic key order. The same
signature arrives in two shapes:

    - processed callback (POST): JSON ``{"type": "TRANSACTION", "obj": {...}}``
      with nested ``order`` and ``source_data`` objects, ``?hmac=`` in the URL
    - response callback (GET redirect): every field flattened into the query
      string (``order``, ``source_data.pan``, ...) next to ``hmac``
"""

import hashlib
import hmac
import logging
from typing import Any, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

HMAC_FIELDS = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order.id",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
)

# Saved-card (TOKEN) callbacks are signed over their own fields
TOKEN_HMAC_FIELDS = (
    "card_subtype",
    "created_at",
    "email",
    "id",
    "masked_pan",
    "merchant_id",
    "order_id",
    "token",
)


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _field(data: Mapping[str, Any], name: str) -> Any:
    if name == "order.id":
        order = data.get("order")
        if isinstance(order, Mapping):
            return order.get("id")
        return order if order is not None else data.get("order.id")

    if "." in name:
        if name in data:
            return data[name]
        parent, child = name.split(".", 1)
        nested = data.get(parent)
        if isinstance(nested, Mapping):
            return nested.get(child)
        return None

    return data.get(name)


def concatenate_fields(data: Mapping[str, Any], fields: Sequence[str] = HMAC_FIELDS) -> str:
    """The string Paymob signs, for either callback shape."""
    return "".join(_render(_field(data, name)) for name in fields)


def compute_paymob_hmac(
    data: Mapping[str, Any],
    secret: str,
    fields: Sequence[str] = HMAC_FIELDS,
) -> str:
    """Hex HMAC-SHA512 of the concatenated callback fields."""
    message = concatenate_fields(data, fields)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512).hexdigest()


def verify_paymob_hmac(
    data: Mapping[str, Any],
    received_hmac: Optional[str],
    secret: Optional[str],
    fields: Sequence[str] = HMAC_FIELDS,
) -> bool:
    """
    Compare the received signature against the computed digest.

    Returns False when the secret or the signature is missing.
    """
    if not secret:
        logger.warning("Paymob HMAC secret not configured, rejecting callback")
        return False
    if not received_hmac:
        logger.warning("Paymob callback without hmac")
        return False

    calculated = compute_paymob_hmac(data, secret, fields)
    valid = hmac.compare_digest(calculated, received_hmac.strip().lower())
    if not valid:
        logger.warning(f"Paymob HMAC mismatch for transaction {_field(data, 'id')}")
    return valid
