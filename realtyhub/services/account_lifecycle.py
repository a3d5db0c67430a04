"""
Account lifecycle hooks.

Registered on the Account model: normalisation and password hashing before
every save, the active-only default for multi-document finds, soft-delete
enforcement on delete_one, and post-save housekeeping.
"""

import re
from typing import Any, Callable

from ..auth.passwords import DEFAULT_ROUNDS, hash_password
from ..db.document import Document, Query
from ..db.schema import utcnow
from ..utils.logger import get_logger

logger = get_logger(__name__)

ACCOUNT_STATUSES = ("pending", "active", "suspended", "deactivated")
ACTIVE = "active"
SUSPENDED = "suspended"
DEACTIVATED = "deactivated"


def to_title_case(value: str) -> str:
    """Capitalise the first letter of every whitespace-delimited word, lowercase the rest"""
    return re.sub(r"\S+", lambda match: match.group(0)[:1].upper() + match.group(0)[1:].lower(), value)


def make_pre_save(rounds: int = DEFAULT_ROUNDS) -> Callable[[Document], None]:
    """Build the pre-save hook hashing with ``rounds`` bcrypt cost"""

    def pre_save(account: Document) -> None:
        if account.is_modified("password") and account.password:
            account.password = hash_password(account.password, rounds)

        if account.email:
            account.email = account.email.strip().lower()

        profile = account.profile
        if profile.first_name:
            profile.first_name = to_title_case(profile.first_name.strip())
        if profile.last_name:
            profile.last_name = to_title_case(profile.last_name.strip())

        if account.phone_number:
            account.phone_number = re.sub(r"^\+", "", account.phone_number)

    return pre_save


def pre_find(query: Query) -> None:
    """Default multi-document reads to active accounts"""
    if "account_status" not in query.get_query():
        query.where(account_status=ACTIVE)


def prevent_hard_delete(query: Query) -> None:
    """Turn delete_one into a soft delete; deactivated accounts are left untouched"""
    clauses = list(query.get_query().get("$and", []))
    clauses.append({"account_status": {"$ne": DEACTIVATED}})
    query.where({"$and": clauses})
    query.set_update({"$set": {"account_status": DEACTIVATED, "deleted_at": utcnow()}})
    logger.info("Hard delete converted to soft delete", query=str(query.get_query()))


def hide_password(account: Document, result: Any) -> None:
    account.unselect("password")


def log_status_change(account: Document, result: Any) -> None:
    if account.was_modified("account_status"):
        logger.info("Account status changed", account_id=account.id, account_status=account.account_status)
