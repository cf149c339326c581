"""
Password hashing and bearer tokens.

Passwords are stored as salted bcrypt hashes. Tokens have the form
"user_id|expiry|signature" where the signature is an HMAC-SHA256 of
"user_id|expiry" under the configured secret, and expiry is a unix timestamp.
"""
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt

from config import settings


def hash_password(pw: str) -> str:
    return bcrypt.hashpw(pw.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(pw: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(pw.encode(), hashed.encode())
    except ValueError:
        return False


def _sign(payload: str) -> str:
    return hmac.new(settings.secret_key.encode(), payload.encode(), hashlib.sha256).hexdigest()


def make_token(user_id: int, ttl: Optional[timedelta] = None) -> str:
    ttl = ttl if ttl is not None else timedelta(hours=settings.token_ttl_hours)
    expiry = int((datetime.now(timezone.utc) + ttl).timestamp())
    payload = f"{user_id}|{expiry}"
    return f"{payload}|{_sign(payload)}"


def parse_token(token: str) -> Optional[int]:
    """Return the user id a valid, unexpired token was issued for, else None."""
    parts = token.split("|")
    if len(parts) != 3:
        return None
    user_id, expiry, signature = parts
    # Header values may carry any latin-1 text; compare as bytes.
    expected = _sign(f"{user_id}|{expiry}").encode()
    if not hmac.compare_digest(expected, signature.encode("utf-8", "surrogateescape")):
        return None
    try:
        if int(expiry) < int(datetime.now(timezone.utc).timestamp()):
            return None
        return int(user_id)
    except ValueError:
        return None
