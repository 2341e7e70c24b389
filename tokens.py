"""
One-time link tokens (email verification, password reset).

A token is valid while `used` is false and `expires_at` is in the future.
Redemption claims the token with a conditional update before the caller
applies its effect, so the same token can never be applied twice.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database

from database import as_naive_utc, create_document, oid, to_str_id, utcnow
from schemas import EmailVerificationToken, PasswordResetToken
from security import generate_secure_token

logger = logging.getLogger(__name__)

EMAIL_VERIFICATION = "emailverificationtoken"
PASSWORD_RESET = "passwordresettoken"

TOKEN_TTL = {
    EMAIL_VERIFICATION: timedelta(hours=24),
    PASSWORD_RESET: timedelta(hours=1),
}

TOKEN_MODELS = {
    EMAIL_VERIFICATION: EmailVerificationToken,
    PASSWORD_RESET: PasswordResetToken,
}

# Failure reasons, checked in this order.
INVALID = "invalid"
EXPIRED = "expired"
USED = "used"


class TokenError(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def issue_token(database: Database, kind: str, user_id: str, now: Optional[datetime] = None) -> str:
    """Create a fresh token for the user; older unused tokens of the same kind stop working."""
    now = now or utcnow()
    database[kind].update_many({"user_id": user_id, "used": False}, {"$set": {"used": True}})
    token = generate_secure_token()
    record = TOKEN_MODELS[kind](token=token, user_id=user_id, expires_at=now + TOKEN_TTL[kind])
    create_document(database, kind, record)
    return token


def inspect_token(database: Database, kind: str, token: str,
                  now: Optional[datetime] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (token document, owning user) or raise TokenError."""
    now = now or utcnow()
    record = database[kind].find_one({"token": token}) if token else None
    if not record:
        raise TokenError(INVALID)
    user_id = oid(record.get("user_id"))
    user = database["user"].find_one({"_id": user_id}) if user_id else None
    if not user:
        raise TokenError(INVALID)
    if as_naive_utc(record["expires_at"]) < now:
        raise TokenError(EXPIRED)
    if record.get("used"):
        raise TokenError(USED)
    return record, user


def claim_token(database: Database, kind: str, token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Atomically flip `used`; losing a concurrent race reports USED."""
    now = now or utcnow()
    claimed = database[kind].find_one_and_update(
        {"token": token, "used": False, "expires_at": {"$gte": now}},
        {"$set": {"used": True, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if claimed is None:
        raise TokenError(USED)
    return claimed


def redeem_token(database: Database, kind: str, token: str,
                 now: Optional[datetime] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    record, user = inspect_token(database, kind, token, now=now)
    claim_token(database, kind, token, now=now)
    return to_str_id(record), user


def purge_expired_tokens(database: Database, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    removed = 0
    for kind in TOKEN_TTL:
        result = database[kind].delete_many({"$or": [{"used": True}, {"expires_at": {"$lt": now}}]})
        removed += result.deleted_count
    if removed:
        logger.info("Purged %d used or expired one-time tokens", removed)
    return removed
