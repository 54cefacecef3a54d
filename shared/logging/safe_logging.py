"""Log-safe descriptions of API keys and OAuth tokens.

Secrets are described as ``present``/``absent``. With ``DEBUG_TOKENS=true``
and a ``LOG_FINGERPRINT_KEY``, an HMAC fingerprint is emitted instead so two
log lines can be matched to the same token without revealing it.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
from dataclasses import dataclass
from typing import Any

_LOGGER = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}

# Serialized-token keys that hold credential material (Google and MSAL spellings)
SECRET_TOKEN_FIELDS = ("access_token", "accessToken", "token", "refresh_token", "refreshToken")


@dataclass(frozen=True)
class FingerprintPolicy:
    debug_tokens: bool = False
    key: bytes | None = None

    @classmethod
    def from_env(cls) -> FingerprintPolicy:
        debug = os.getenv("DEBUG_TOKENS", "false").strip().lower() in _TRUTHY
        raw_key = os.getenv("LOG_FINGERPRINT_KEY", "").strip()
        policy = cls(debug_tokens=debug, key=raw_key.encode("utf-8") if raw_key else None)
        if policy.debug_tokens and policy.key is None:
            _LOGGER.warning("[safe-logging] DEBUG_TOKENS enabled but LOG_FINGERPRINT_KEY missing")
        return policy


_policy = FingerprintPolicy.from_env()


def token_fingerprint(token: str, policy: FingerprintPolicy | None = None) -> str:
    """Short HMAC-SHA256 fingerprint, or ``fp-disabled`` without a key."""
    policy = policy or _policy
    if policy.key is None:
        return "fp-disabled"
    digest = hmac.new(policy.key, token.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")[:24]


def token_presence(label: str, token: str | None, policy: FingerprintPolicy | None = None) -> str:
    """Describe ``token`` as ``label=absent``, ``label=present`` or ``label_fp=...``."""
    policy = policy or _policy
    if not token:
        return f"{label}=absent"
    if not policy.debug_tokens:
        return f"{label}=present"
    return f"{label}_fp={token_fingerprint(token, policy)}"


def describe_token_blob(blob: dict[str, Any], policy: FingerprintPolicy | None = None) -> str:
    """One-line summary of a serialized OAuth token with every secret field masked."""
    parts = [token_presence(name, blob.get(name), policy) for name in SECRET_TOKEN_FIELDS if name in blob]
    for name in ("expiry_date", "expires_at", "expiresOn", "expiry"):
        if blob.get(name):
            parts.append(f"{name}={blob[name]}")
            break
    return " ".join(parts) or "empty token"
