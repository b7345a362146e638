"""Redemption token signing and verification.

Binds a reward redemption to a user and reward with an HMAC-SHA256 signature
and a generation timestamp, so canteen staff can trust a scanned QR code.

Security features:
- HMAC-SHA256 over a canonical pipe-delimited string
- Constant-time signature comparison
- 5 minute validity window, future timestamps rejected
- Distinct rejection kinds so the caller can tell "regenerate" from "forged"

Tokens are never stored. Validity depends only on the token's own fields, the
shared secret and the clock. Single use is enforced by the caller through the
persisted redemption status, not here.

Usage:
    authority = RedemptionTokenAuthority(secret=settings.QR_SECRET)
    wire = authority.generate("d1", "ABC123", "u1", "r1").to_wire()

    result = authority.verify(wire)
    if result.ok:
        mark_redeemed(result.token.redemption_id)
"""

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from laudato.core.exceptions import ConfigurationError


TOKEN_VERSION = "1.0"
VALIDITY_WINDOW_MS = 5 * 60 * 1000
REFRESH_THRESHOLD_MS = 4 * 60 * 1000

# Generated tokens are a few hundred bytes; anything far larger is not ours
MAX_TOKEN_LENGTH = 4096

# Wire keys, in canonical signing order
SIGNED_FIELDS = ("redemptionId", "redemptionCode", "userId", "rewardId", "timestamp", "version")
REQUIRED_FIELDS = ("redemptionId", "redemptionCode", "userId", "rewardId", "timestamp", "signature")
STRING_FIELDS = ("redemptionId", "redemptionCode", "userId", "rewardId", "signature")


def now_ms() -> int:
    """Wall clock in milliseconds since the epoch"""
    return int(time.time() * 1000)


class TokenErrorKind(str, Enum):
    """Why a redemption token was rejected"""
    MALFORMED_FORMAT = "malformed_format"
    MISSING_FIELDS = "missing_fields"
    UNSUPPORTED_VERSION = "unsupported_version"
    EXPIRED = "expired"
    CLOCK_SKEW = "clock_skew"
    INVALID_SIGNATURE = "invalid_signature"


TOKEN_ERROR_MESSAGES: Dict[TokenErrorKind, str] = {
    TokenErrorKind.MALFORMED_FORMAT: "Invalid QR code format. Please regenerate your QR code from the wallet.",
    TokenErrorKind.MISSING_FIELDS: "QR code is missing required data",
    TokenErrorKind.UNSUPPORTED_VERSION: "Unsupported QR code version",
    TokenErrorKind.EXPIRED: "QR code has expired. Please refresh your wallet to generate a new code.",
    TokenErrorKind.CLOCK_SKEW: "QR code timestamp is in the future. System clock may be incorrect.",
    TokenErrorKind.INVALID_SIGNATURE: "QR code signature is invalid. This may be a fake or tampered code.",
}


@dataclass(frozen=True)
class RedemptionToken:
    """Signed claim that user_id may redeem reward_id under redemption_id"""
    redemption_id: str
    redemption_code: str
    user_id: str
    reward_id: str
    timestamp: int
    signature: str
    version: str = TOKEN_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "redemptionId": self.redemption_id,
            "redemptionCode": self.redemption_code,
            "userId": self.user_id,
            "rewardId": self.reward_id,
            "timestamp": self.timestamp,
            "signature": self.signature,
            "version": self.version,
        }

    def to_wire(self) -> str:
        """Serialize to the JSON string encoded in the QR code"""
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass(frozen=True)
class TokenVerified:
    token: RedemptionToken
    ok: bool = True


@dataclass(frozen=True)
class TokenRejected:
    kind: TokenErrorKind
    ok: bool = False

    @property
    def message(self) -> str:
        return TOKEN_ERROR_MESSAGES[self.kind]


VerificationResult = Union[TokenVerified, TokenRejected]


def canonical_string(
    redemption_id: str,
    redemption_code: str,
    user_id: str,
    reward_id: str,
    timestamp: int,
    version: str,
) -> str:
    """Pipe-delimited signing input, in fixed field order"""
    return f"{redemption_id}|{redemption_code}|{user_id}|{reward_id}|{timestamp}|{version}"


def _decode(raw: Union[str, bytes, None]) -> Optional[Dict[str, Any]]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str):
        return None
    if len(raw) > MAX_TOKEN_LENGTH:
        return None
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def _is_timestamp(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class RedemptionTokenAuthority:
    """Generates and verifies redemption tokens.

    Holds no mutable state; safe to share across request handlers.

    Attributes:
        validity_ms: Maximum token age accepted by verify (default 5 minutes)
        refresh_ms: Age after which needs_refresh reports True (default 4 minutes)
    """

    def __init__(
        self,
        secret: str,
        clock: Callable[[], int] = now_ms,
        validity_ms: int = VALIDITY_WINDOW_MS,
        refresh_ms: int = REFRESH_THRESHOLD_MS,
    ):
        if not secret:
            raise ConfigurationError("Redemption token secret must not be empty")
        if refresh_ms > validity_ms:
            raise ConfigurationError(
                f"Refresh threshold ({refresh_ms}ms) must not exceed validity window ({validity_ms}ms)"
            )
        self._secret = secret.encode("utf-8")
        self._clock = clock
        self.validity_ms = validity_ms
        self.refresh_ms = refresh_ms

    def _sign(self, message: str) -> str:
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def generate(
        self,
        redemption_id: str,
        redemption_code: str,
        user_id: str,
        reward_id: str,
    ) -> RedemptionToken:
        """Create a freshly signed token stamped with the current time.

        Args:
            redemption_id: Redemption record ID
            redemption_code: Human readable code shown beside the QR
            user_id: Owner of the redemption
            reward_id: Reward being claimed

        Returns:
            RedemptionToken; call to_wire() for the QR payload
        """
        timestamp = self._clock()
        signature = self._sign(canonical_string(
            redemption_id, redemption_code, user_id, reward_id, timestamp, TOKEN_VERSION
        ))
        return RedemptionToken(
            redemption_id=redemption_id,
            redemption_code=redemption_code,
            user_id=user_id,
            reward_id=reward_id,
            timestamp=timestamp,
            signature=signature,
            version=TOKEN_VERSION,
        )

    def verify(self, raw: Union[str, bytes]) -> VerificationResult:
        """Validate a scanned token.

        Checks run in order and the first failure wins:
        format, required fields, version, freshness, signature.

        Args:
            raw: Token wire string or bytes

        Returns:
            TokenVerified with the trusted token, or TokenRejected with the kind.
            Never raises.
        """
        data = _decode(raw)
        if data is None:
            return TokenRejected(TokenErrorKind.MALFORMED_FORMAT)

        if not all(_is_present(data.get(name)) for name in REQUIRED_FIELDS):
            return TokenRejected(TokenErrorKind.MISSING_FIELDS)

        if not all(isinstance(data[name], str) for name in STRING_FIELDS):
            return TokenRejected(TokenErrorKind.MALFORMED_FORMAT)
        if not _is_timestamp(data["timestamp"]):
            return TokenRejected(TokenErrorKind.MALFORMED_FORMAT)

        if data.get("version") != TOKEN_VERSION:
            return TokenRejected(TokenErrorKind.UNSUPPORTED_VERSION)

        age = self._clock() - data["timestamp"]
        if age > self.validity_ms:
            return TokenRejected(TokenErrorKind.EXPIRED)
        if age < 0:
            return TokenRejected(TokenErrorKind.CLOCK_SKEW)

        expected = self._sign(canonical_string(*(data[name] for name in SIGNED_FIELDS)))
        if not hmac.compare_digest(expected.encode("utf-8"), data["signature"].encode("utf-8")):
            return TokenRejected(TokenErrorKind.INVALID_SIGNATURE)

        return TokenVerified(RedemptionToken(
            redemption_id=data["redemptionId"],
            redemption_code=data["redemptionCode"],
            user_id=data["userId"],
            reward_id=data["rewardId"],
            timestamp=data["timestamp"],
            signature=data["signature"],
            version=data["version"],
        ))

    def needs_refresh(self, raw: Union[str, bytes]) -> bool:
        """Whether the holder should regenerate the QR code.

        Drives the wallet's regenerate prompt only; never use it to accept a token.
        Unparseable input counts as needing refresh.
        """
        data = _decode(raw)
        if data is None or not _is_timestamp(data.get("timestamp")):
            return True
        return self._clock() - data["timestamp"] > self.refresh_ms
