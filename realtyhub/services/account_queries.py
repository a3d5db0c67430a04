"""Collection-level Account operations, attached as statics"""

import re
from typing import Any, Dict, List, Optional

from ..db.document import Document
from ..db.schema import utcnow
from ..utils.exceptions import ConflictError, NotFoundError
from ..utils.logger import get_logger
from .account_lifecycle import ACTIVE, DEACTIVATED, SUSPENDED

logger = get_logger(__name__)


def find_by_email(cls, email: str) -> Optional[Document]:
    if isinstance(email, str):
        email = email.strip().lower()
    return cls.find_one({"email": email, "account_status": ACTIVE})


def find_by_username(cls, username: str) -> Optional[Document]:
    return cls.find_one({"username": username, "account_status": ACTIVE})


def find_by_id_active_only(cls, _id: Any) -> Optional[Document]:
    return cls.find_one({"_id": _id, "account_status": ACTIVE})


def find_by_email_or_username(cls, identifier: str) -> Optional[Document]:
    if isinstance(identifier, str):
        identifier = identifier.strip().lower()
    return cls.find_one({
        "$or": [{"email": identifier}, {"username": identifier}],
        "account_status": ACTIVE,
    })


def search_users(cls, text: str) -> List[Document]:
    """Case-insensitive substring match on first name, last name or email"""
    pattern = re.compile(re.escape(text), re.IGNORECASE)
    return cls.find({
        "account_status": ACTIVE,
        "$or": [
            {"profile.first_name": pattern},
            {"profile.last_name": pattern},
            {"email": pattern},
        ],
    })


def lock_user_by_id(cls, _id: Any) -> Optional[Document]:
    """Suspend an active account; None when no active account has this id"""
    account = cls.find_one_and_update({"_id": _id, "account_status": ACTIVE}, {"account_status": SUSPENDED})
    if account is not None:
        logger.info("Account suspended", account_id=account.id)
    return account


def soft_delete(cls, query: Dict[str, Any]) -> Document:
    """
    Deactivate exactly one account.

    Raises:
        NotFoundError: If nothing matches ``query``
        ConflictError: If the account is already deactivated (no write happens)
    """
    account = cls.find_one(query)
    if account is None:
        raise NotFoundError("Document not found")
    if account.account_status == DEACTIVATED:
        raise ConflictError("Account is already deactivated")

    account.account_status = DEACTIVATED
    account.deleted_at = utcnow()
    return account.save()


ACCOUNT_STATICS = {
    "find_by_email": find_by_email,
    "find_by_username": find_by_username,
    "find_by_id_active_only": find_by_id_active_only,
    "find_by_email_or_username": find_by_email_or_username,
    "search_users": search_users,
    "lock_user_by_id": lock_user_by_id,
    "soft_delete": soft_delete,
}
