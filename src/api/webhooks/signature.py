"""
HMAC-SHA256 signature verification for inbound payment webhooks.

Gateways sign a canonical message derived from the request (timestamp,
method, path, raw body, identifiers). Which canonical form a gateway uses is
configuration, see ``SignatureFormat``. Verification always runs over the raw
bytes received, never over a re-serialized body.
"""

import hashlib
import hmac
from typing import List, Optional, Sequence, Tuple, Union

from src.api.webhooks.exceptions import ConfigurationError, InvalidSignature
from src.config.constants import SignatureFormat
from src.shared.utils import get_logger

logger = get_logger(__name__)


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(secret: Union[str, bytes], message: bytes) -> str:
    """Hex HMAC-SHA256 of ``message`` under ``secret``."""
    return hmac.new(_to_bytes(secret), message, hashlib.sha256).hexdigest()


def verify_signature(
    secret: Union[str, bytes], message: bytes, received_signature: Optional[str]
) -> bool:
    """
    Constant-time check of a hex signature against ``message``.

    Missing or non-hex signatures are rejected instead of raising.
    """
    if not received_signature:
        return False
    try:
        received = bytes.fromhex(received_signature.strip())
    except ValueError:
        return False
    expected = hmac.new(_to_bytes(secret), message, hashlib.sha256).digest()
    return hmac.compare_digest(expected, received)


def parse_signature_header(header: Optional[str]) -> Tuple[Optional[str], List[str]]:
    """
    Split a ``ts=<timestamp>,v1=<hex>`` header (Stripe uses ``t=``).

    Returns ``(timestamp, signatures)``; both empty when the header has no
    key/value parts.
    """
    timestamp: Optional[str] = None
    signatures: List[str] = []
    if not header:
        return timestamp, signatures

    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if key in ("ts", "t"):
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def build_canonical_message(
    signature_format: SignatureFormat,
    *,
    timestamp: Optional[str],
    raw_body: bytes,
    method: str = "POST",
    path: str = "",
    data_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> bytes:
    """Assemble the exact bytes the gateway signed."""
    ts = timestamp or ""

    if signature_format == SignatureFormat.MANIFEST:
        parts = []
        if data_id:
            parts.append(f"id:{data_id};")
        if request_id:
            parts.append(f"request-id:{request_id};")
        if ts:
            parts.append(f"ts:{ts};")
        return "".join(parts).encode("utf-8")

    if signature_format == SignatureFormat.TIMESTAMP_METHOD_PATH_BODY:
        return f"{ts}{method.upper()}{path}".encode("utf-8") + raw_body

    if signature_format == SignatureFormat.TIMESTAMP_BODY:
        return ts.encode("utf-8") + raw_body

    raise ValueError(f"Unsupported signature format: {signature_format}")


class SignatureVerifier:
    """
    Holds one gateway's secret and decides whether a request is authentic.

    Fails closed: with no secret configured nothing verifies. The skip mode
    exists for local debugging only and is refused in production.
    """

    def __init__(
        self,
        gateway: str,
        secret: Optional[str],
        environment: str = "development",
        skip_validation: bool = False,
    ):
        self.gateway = gateway
        self.secret = secret or None
        self.environment = environment
        self.skip_validation = skip_validation

        if skip_validation and environment == "production":
            logger.error(
                f"[{gateway}] Signature validation skip requested in production; ignoring it"
            )
            self.skip_validation = False
        elif self.skip_validation:
            logger.warning(
                f"[{gateway}] SIGNATURE VALIDATION DISABLED ({environment}). "
                "Unauthenticated webhooks will be processed."
            )

        if not self.secret and not self.skip_validation:
            logger.critical(
                f"[{gateway}] Webhook secret not configured; all notifications will be rejected"
            )

    @property
    def configured(self) -> bool:
        return bool(self.secret)

    def guard(self, timestamp: Optional[str] = None) -> bool:
        """
        Decide whether a signature check must run.

        False in skip mode; raises ``ConfigurationError`` when there is no
        secret to check against.
        """
        if self.skip_validation:
            logger.warning(
                f"[{self.gateway}] Processing webhook WITHOUT signature validation "
                f"(ts={timestamp}, environment={self.environment})"
            )
            return False

        if not self.secret:
            logger.critical(f"[{self.gateway}] Rejecting webhook: secret not configured")
            raise ConfigurationError(f"{self.gateway} webhook secret is not configured")
        return True

    def verify(
        self,
        message: Optional[bytes],
        signatures: Sequence[str],
        timestamp: Optional[str] = None,
    ) -> bool:
        """
        Raise unless one of ``signatures`` matches ``message``.

        Returns True when the signature was checked, False when skip mode let
        the request through unchecked.
        """
        if not self.guard(timestamp):
            return False

        if message is None or not signatures:
            raise InvalidSignature(f"{self.gateway} signature header missing")

        if not any(verify_signature(self.secret, message, s) for s in signatures):
            raise InvalidSignature(f"{self.gateway} signature mismatch")

        return True
