"""
Auth Service — Account Sessions for the Vault API.

On-chain, the account a repayment is burned from is `msg.sender`, proven by
the transaction signature. Over HTTP the same binding is established once:
the account signs a short challenge (EIP-191 personal message), the server
recovers the signer and hands back a short-lived, HMAC-signed session token
bound to that address. Later requests present the token instead of a fresh
signature.

Flow:
    client: sign challenge_message(address, issued_at)
    POST /vault/session  → open_session() → token
    POST /vault/withdraw (X-Session-Token) → validate_session_token() → caller
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from zkvault.core.config import settings

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for authentication failures."""
    pass


class TokenExpired(AuthError):
    """Raised when the session token TTL has elapsed."""
    pass


class TokenInvalid(AuthError):
    """Raised when the token signature or format is bad."""
    pass


class ChallengeInvalid(AuthError):
    """Raised when the signed challenge is stale or signed by someone else."""
    pass


def challenge_message(address: str, issued_at: int) -> str:
    """Text the account signs to open a session."""
    return f"zkVault session for {Web3.to_checksum_address(address)} issued at {int(issued_at)}"


def open_session(address: str, issued_at: int, signature: str, now: Optional[int] = None) -> Dict[str, str]:
    """
    Verify a signed challenge and issue a session token for its signer.

    Raises:
        ChallengeInvalid: if the address is malformed, the challenge is
            outside the allowed window, or the signer differs from address.
    """
    now = int(time.time()) if now is None else now
    if not Web3.is_address(address):
        raise ChallengeInvalid(f"Not an account address: {address!r}")
    if abs(now - int(issued_at)) > settings.SESSION_CHALLENGE_WINDOW_SECONDS:
        raise ChallengeInvalid("Challenge is outside the allowed time window")

    message = encode_defunct(text=challenge_message(address, issued_at))
    try:
        signer = Account.recover_message(message, signature=signature)
    except Exception as e:
        raise ChallengeInvalid(f"Unreadable signature: {e}") from e

    expected = Web3.to_checksum_address(address)
    if signer != expected:
        logger.warning(f"[AUTH] Challenge for {expected} signed by {signer}")
        raise ChallengeInvalid("Challenge was not signed by the claimed account")

    logger.info(f"[AUTH] Session opened for {expected}")
    return generate_session_token(expected, now=now)


def generate_session_token(address: str, now: Optional[int] = None) -> Dict[str, str]:
    """
    Create a signed session token for an account.

    Payload:
        - sub: account address
        - iat: issued_at timestamp (int seconds)
        - exp: expires_at timestamp (int seconds)
    """
    now = int(time.time()) if now is None else now
    exp = now + settings.SESSION_TOKEN_TTL_MINUTES * 60

    payload = {"sub": address, "iat": now, "exp": exp}

    json_bytes = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    payload_b64 = base64.urlsafe_b64encode(json_bytes).decode("utf-8").rstrip("=")
    token = f"{payload_b64}.{_sign(payload_b64)}"

    return {
        "token": token,
        "expires_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(exp)),
        "address": address,
    }


def validate_session_token(token: str, now: Optional[float] = None) -> str:
    """
    Validate a session token and return the account address (sub).

    Raises:
        TokenInvalid: if format or signature is bad.
        TokenExpired: if exp < now.
    """
    if not token or "." not in token:
        raise TokenInvalid("Invalid token format")

    payload_b64, provided_sig = token.rsplit(".", 1)

    if not hmac.compare_digest(provided_sig, _sign(payload_b64)):
        raise TokenInvalid("Invalid signature")

    try:
        padding = "=" * (-len(payload_b64) % 4)
        payload = json.loads(base64.urlsafe_b64decode(payload_b64 + padding))
    except ValueError as e:
        raise TokenInvalid(f"Corrupt payload: {e}") from e
    if not isinstance(payload, dict):
        raise TokenInvalid("Corrupt payload")

    now = time.time() if now is None else now
    if now > payload.get("exp", 0):
        raise TokenExpired("Session token has expired")

    subject = payload.get("sub", "")
    if not subject:
        raise TokenInvalid("Token carries no account")
    return subject


def _sign(data: str) -> str:
    """HMAC-SHA256 over data with settings.SECRET_KEY."""
    key = settings.SECRET_KEY.encode("utf-8")
    sig_bytes = hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(sig_bytes).decode("utf-8").rstrip("=")
