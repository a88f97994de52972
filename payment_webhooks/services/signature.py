"""
Webhook signature verification.

Each gateway signs the raw request body with the shared webhook secret:

    stripe    Stripe-Signature: t=<unix>,v1=<hex>[,v1=<hex>]
              HMAC-SHA256(secret, "<t>." + body)
    razorpay  X-Razorpay-Signature: <hex>
              HMAC-SHA256(secret, body)

Verification needs the exact bytes the gateway sent, never a re-serialized
body. Any failure raises SignatureInvalidError and nothing downstream runs.
"""
import hashlib
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional
from payment_webhooks.core.config import GatewayConfig
from payment_webhooks.core.exceptions import SignatureInvalidError, UnknownGatewayError

logger = logging.getLogger(__name__)


def _hmac_sha256(secret: bytes, message: bytes) -> str:
    return hmac.new(secret, msg=message, digestmod=hashlib.sha256).hexdigest()


def _digest_matches(expected: str, candidate: str) -> bool:
    # header values may carry any characters, compare_digest only takes ASCII str
    return hmac.compare_digest(expected.encode(), candidate.encode("utf-8", "replace"))


def _header(headers: Mapping[str, str], name: str) -> str:
    # starlette Headers are case-insensitive, plain dicts are not
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower(), "")
    return value.strip()


class SignatureVerifier(ABC):
    signature_header: str = ""

    @abstractmethod
    def verify(self, config: GatewayConfig, body: bytes, headers: Mapping[str, str],
               now: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def sign(self, secret: bytes, body: bytes, timestamp: Optional[int] = None) -> str:
        ...

    @staticmethod
    def _check_skew(timestamp: int, config: GatewayConfig, now: Optional[float]) -> None:
        current = time.time() if now is None else now
        if abs(current - timestamp) > config.allowed_skew_seconds:
            raise SignatureInvalidError("Timestamp outside the allowed tolerance")


class StripeSignatureVerifier(SignatureVerifier):
    signature_header = "Stripe-Signature"

    def sign(self, secret: bytes, body: bytes, timestamp: Optional[int] = None) -> str:
        if timestamp is None:
            timestamp = int(time.time())
        signature = _hmac_sha256(secret, f"{timestamp}.".encode() + body)
        return f"t={timestamp},v1={signature}"

    def verify(self, config: GatewayConfig, body: bytes, headers: Mapping[str, str],
               now: Optional[float] = None) -> None:
        if not config.shared_secret:
            raise SignatureInvalidError("Webhook secret not configured")
        header = _header(headers, self.signature_header)
        if not header:
            raise SignatureInvalidError("Missing signature")

        timestamp = None
        candidates = []
        for item in header.split(","):
            key, sep, value = item.strip().partition("=")
            if not sep:
                continue
            if key == "t":
                timestamp = value
            elif key == "v1":
                candidates.append(value)
        if timestamp is None or not timestamp.isdigit() or not candidates:
            raise SignatureInvalidError("Malformed signature header")

        expected = _hmac_sha256(config.shared_secret, f"{timestamp}.".encode() + body)
        # compare against every v1 so secret rotation keeps working
        matched = False
        for candidate in candidates:
            if _digest_matches(expected, candidate):
                matched = True
        if not matched:
            raise SignatureInvalidError("Signature mismatch")
        self._check_skew(int(timestamp), config, now)


class RazorpaySignatureVerifier(SignatureVerifier):
    signature_header = "X-Razorpay-Signature"

    def sign(self, secret: bytes, body: bytes, timestamp: Optional[int] = None) -> str:
        return _hmac_sha256(secret, body)

    def verify(self, config: GatewayConfig, body: bytes, headers: Mapping[str, str],
               now: Optional[float] = None) -> None:
        if not config.shared_secret:
            raise SignatureInvalidError("Webhook secret not configured")
        signature = _header(headers, self.signature_header)
        if not signature:
            raise SignatureInvalidError("Missing signature")
        expected = _hmac_sha256(config.shared_secret, body)
        if not _digest_matches(expected, signature):
            raise SignatureInvalidError("Signature mismatch")

        # Razorpay signs no timestamp; created_at is covered by the body HMAC
        try:
            created_at = json.loads(body).get("created_at")
        except (ValueError, AttributeError):
            raise SignatureInvalidError("Signed body is not a JSON object")
        if not isinstance(created_at, int):
            raise SignatureInvalidError("Signed body has no created_at timestamp")
        self._check_skew(created_at, config, now)


VERIFIERS: Dict[str, SignatureVerifier] = {
    "stripe": StripeSignatureVerifier(),
    "razorpay": RazorpaySignatureVerifier(),
}


def get_verifier(gateway: str) -> SignatureVerifier:
    verifier = VERIFIERS.get(gateway)
    if verifier is None:
        raise UnknownGatewayError(gateway)
    return verifier


def verify_signature(config: GatewayConfig, body: bytes, headers: Mapping[str, str],
                     now: Optional[float] = None) -> None:
    try:
        get_verifier(config.gateway).verify(config, body, headers, now=now)
    except SignatureInvalidError as e:
        logger.warning(f"Rejected {config.gateway} webhook: {e.message}")
        raise


def sign_payload(gateway: str, secret: bytes, body: bytes, timestamp: Optional[int] = None) -> str:
    return get_verifier(gateway).sign(secret, body, timestamp=timestamp)
