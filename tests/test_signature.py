import hashlib
import hmac

from wagba.services.payment.signature import (
    HMAC_FIELDS,
    TOKEN_HMAC_FIELDS,
    compute_paymob_hmac,
    concatenate_fields,
    verify_paymob_hmac,
)

SECRET = "test-hmac-secret"


def processed_transaction(**overrides):
    obj = {
        "id": 192036465,
        "pending": False,
        "amount_cents": 99600,
        "success": True,
        "is_auth": False,
        "is_capture": False,
        "is_standalone_payment": True,
        "is_voided": False,
        "is_refunded": False,
        "is_3d_secure": True,
        "integration_id": 4097558,
        "has_parent_transaction": False,
        "created_at": "2026-10-17T12:00:00.000000",
        "currency": "EGP",
        "error_occured": False,
        "owner": 302852,
        "order": {"id": 217503754, "merchant_order_id": "12-1760000000"},
        "source_data": {"pan": "2346", "type": "card", "sub_type": "MasterCard"},
    }
    obj.update(overrides)
    return obj


def flattened(obj):
    """The same transaction as the browser redirect query string carries it."""
    params = {k: v for k, v in obj.items() if k not in ("order", "source_data")}
    params = {k: ("true" if v is True else "false" if v is False else str(v)) for k, v in params.items()}
    params["order"] = str(obj["order"]["id"])
    for key, value in obj["source_data"].items():
        params[f"source_data.{key}"] = value
    return params


class TestConcatenation:
    def test_fields_follow_lexicographic_order(self):
        assert list(HMAC_FIELDS) == sorted(HMAC_FIELDS)
        assert list(TOKEN_HMAC_FIELDS) == sorted(TOKEN_HMAC_FIELDS)

    def test_booleans_render_lowercase(self):
        message = concatenate_fields(processed_transaction())
        assert message.startswith("996002026-10-17T12:00:00.000000EGPfalsefalse192036465")
        assert message.endswith("2346MasterCardcardtrue")

    def test_missing_fields_render_empty(self):
        assert concatenate_fields({}, ("id", "order.id", "source_data.pan")) == ""


class TestSignature:
    def test_matches_reference_digest(self):
        obj = processed_transaction()
        expected = hmac.new(
            SECRET.encode(), concatenate_fields(obj).encode(), hashlib.sha512
        ).hexdigest()
        assert compute_paymob_hmac(obj, SECRET) == expected

    def test_nested_and_flattened_shapes_sign_identically(self):
        obj = processed_transaction()
        assert compute_paymob_hmac(obj, SECRET) == compute_paymob_hmac(flattened(obj), SECRET)

    def test_verify_accepts_valid_signature(self):
        obj = processed_transaction()
        assert verify_paymob_hmac(obj, compute_paymob_hmac(obj, SECRET), SECRET)

    def test_verify_rejects_tampered_amount(self):
        obj = processed_transaction()
        signature = compute_paymob_hmac(obj, SECRET)
        assert not verify_paymob_hmac(processed_transaction(amount_cents=100), signature, SECRET)

    def test_verify_rejects_missing_secret_or_signature(self):
        obj = processed_transaction()
        assert not verify_paymob_hmac(obj, None, SECRET)
        assert not verify_paymob_hmac(obj, compute_paymob_hmac(obj, SECRET), None)

    def test_token_callbacks_use_their_own_fields(self):
        token = {
            "id": 1, "token": "tok_abc", "masked_pan": "xxxx-2346", "merchant_id": 9,
            "card_subtype": "Visa", "created_at": "2026-10-17", "email": "a@mail.com", "order_id": 55,
        }
        signature = compute_paymob_hmac(token, SECRET, TOKEN_HMAC_FIELDS)
        assert verify_paymob_hmac(token, signature, SECRET, TOKEN_HMAC_FIELDS)
        assert not verify_paymob_hmac(token, signature, SECRET)
