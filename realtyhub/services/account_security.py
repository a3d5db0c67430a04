"""
Account instance behaviours: password checks, login lockout, email
verification and login history.

``account_methods`` binds the functions to the configured security policy;
SchemaBuilder attaches the result as instance methods of the Account model.
"""

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..auth.passwords import verify_password
from ..db.document import Document
from ..db.schema import cast_value, utcnow
from ..utils.config import SecuritySettings
from ..utils.exceptions import InvalidTokenError, NotFoundError, ServerError
from ..utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_PATH = "security.email_verification_token"
ATTEMPTS_PATH = "security.failed_login_attempts"
LOCK_PATH = "security.lock_until"


def lock_active(lock_until: Optional[datetime]) -> bool:
    """True iff ``lock_until`` is set and strictly in the future"""
    if lock_until is None:
        return False
    return cast_value(datetime, lock_until) > utcnow()


def account_methods(security: Optional[SecuritySettings] = None) -> Dict[str, Callable[..., Any]]:
    """Instance methods for the Account model under ``security``"""
    security = security or SecuritySettings()
    lock_time = timedelta(minutes=security.lock_minutes)

    def compare_password(self: Document, candidate_password: str) -> bool:
        """
        Check a candidate against the stored hash.

        The hash is hidden from default reads, so it is fetched again by _id.
        Every failure (missing account, malformed hash, store error) surfaces
        as the same ServerError.
        """
        try:
            stored = type(self).find_one({"_id": self._id}, include_hidden=["password"])
            return verify_password(candidate_password, stored.password)
        except Exception as e:
            logger.warning("Password comparison failed", account_id=self.id, error=str(e))
            raise ServerError("Password comparison failed") from e

    def update_last_login(self: Document) -> Document:
        self.security.last_login = utcnow()
        return self.save()

    def increment_failed_logins(self: Document) -> Document:
        """
        Count a failed login and lock the account at the threshold.

        Persisted accounts are incremented store-side with ``$inc`` and locked
        with a conditional update, then reloaded; unsaved in-memory changes
        are discarded.
        """
        model = type(self)
        if self.is_new:
            attempts = (self.security.failed_login_attempts or 0) + 1
            self.security.failed_login_attempts = attempts
            if attempts >= security.max_failed_logins:
                self.security.lock_until = utcnow() + lock_time
            return self.save()

        updated = model.find_one_and_update({"_id": self._id}, {"$inc": {ATTEMPTS_PATH: 1}})
        if updated is None:
            raise NotFoundError("Account not found")
        attempts = updated.get(ATTEMPTS_PATH) or 0
        if attempts >= security.max_failed_logins:
            model.find_one_and_update(
                {"_id": self._id, ATTEMPTS_PATH: {"$gte": security.max_failed_logins}},
                {"$set": {LOCK_PATH: utcnow() + lock_time}},
            )
            logger.warning("Account locked after failed logins", account_id=self.id, attempts=attempts)
        return self.reload()

    def reset_failed_logins(self: Document) -> Document:
        self.security.failed_login_attempts = 0
        self.security.lock_until = None
        return self.save()

    def is_locked(self: Document) -> bool:
        return lock_active(self.security.lock_until)

    def generate_email_verification_token(self: Document) -> str:
        token = secrets.token_hex(security.verification_token_bytes)
        self.security.email_verification_token = token
        self.save()
        return token

    def verify_email(self: Document, token: str) -> Document:
        stored = self.get(TOKEN_PATH)
        if stored is None and not self.is_new:
            self.reload(include_hidden=[TOKEN_PATH])
            stored = self.get(TOKEN_PATH)
        if (
            not isinstance(stored, str)
            or not isinstance(token, str)
            or not hmac.compare_digest(stored.encode("utf-8"), token.encode("utf-8"))
        ):
            raise InvalidTokenError()

        self.security.is_email_verified = True
        self.unset(TOKEN_PATH)
        return self.save()

    def add_login_history(self: Document, login_data: Optional[Dict[str, Any]] = None, **fields: Any) -> Document:
        """Prepend a login entry, keeping the most recent ``login_history_limit``"""
        entry = dict(login_data or {})
        entry.update(fields)
        entry.setdefault("login_at", utcnow())
        history = [entry] + list(self.login_history or [])
        self.login_history = history[:security.login_history_limit]
        return self.save()

    return {
        "compare_password": compare_password,
        "update_last_login": update_last_login,
        "increment_failed_logins": increment_failed_logins,
        "reset_failed_logins": reset_failed_logins,
        "is_locked": is_locked,
        "generate_email_verification_token": generate_email_verification_token,
        "verify_email": verify_email,
        "add_login_history": add_login_history,
    }
