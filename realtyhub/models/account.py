"""
Account model configuration.

``build_account_config`` returns the declarative configuration the schema
builder compiles into the Account entity type: fields and constraints,
indexes, lifecycle hooks, instance methods, statics and virtuals.
"""

from typing import Any, Dict, Optional

from ..db.document import Document
from ..db.schema import utcnow
from ..services.account_lifecycle import (
    ACCOUNT_STATUSES,
    hide_password,
    log_status_change,
    make_pre_save,
    pre_find,
    prevent_hard_delete,
)
from ..services.account_queries import ACCOUNT_STATICS
from ..services.account_security import account_methods, lock_active
from ..utils.config import SecuritySettings
from .validation_rules import DEFAULT_RULES, ValidationRules

ACCOUNT_MODEL_NAME = "Account"
ROLES = ("user", "agent", "admin")
DEFAULT_AVATAR = "https://cdn.pixabay.com/photo/2015/03/04/22/35/avatar-659651_640.png"


def full_name(account: Document) -> str:
    return f"{account.profile.first_name} {account.profile.last_name}"


def locked_status(account: Document) -> bool:
    return lock_active(account.security.lock_until)


def _strip_password(account: Document, data: Dict[str, Any]) -> Dict[str, Any]:
    data.pop("password", None)
    return data


def build_account_fields(rules: ValidationRules = DEFAULT_RULES) -> Dict[str, Any]:
    constraints = rules.constraints
    required = rules.required
    patterns = rules.patterns
    messages = rules.messages
    ipv4 = rules.pattern("ipv4")
    ipv6 = rules.pattern("ipv6")

    def is_ip_address(value: str) -> bool:
        return bool(ipv4.search(value) or ipv6.search(value))

    return {
        "username": {
            "type": "String",
            "required": (required.username, messages.username_required),
            "unique": True,
            "trim": True,
            "lowercase": True,
            "minlength": (constraints.username.min_length, messages.username_min),
            "maxlength": (constraints.username.max_length, messages.username_max),
            "match": (patterns.username, messages.username_pattern),
        },
        "email": {
            "type": "String",
            "required": (required.email, messages.email_required),
            "unique": True,
            "trim": True,
            "lowercase": True,
            "match": (patterns.email, messages.email_pattern),
        },
        "password": {
            "type": "String",
            "required": (required.password, messages.password_required),
            "select": False,
            "minlength": (constraints.password.min_length, messages.password_min),
            "match": (patterns.password_medium, messages.password_pattern),
        },
        "phone_number": {
            "type": "String",
            "trim": True,
            "match": (patterns.phone_number, messages.phone_pattern),
        },
        "profile": {
            "first_name": {
                "type": "String",
                "required": (required.first_name, messages.first_name_required),
                "trim": True,
                "minlength": (constraints.name.min_length, messages.first_name_min),
                "maxlength": (constraints.name.max_length, messages.first_name_max),
            },
            "last_name": {
                "type": "String",
                "required": (required.last_name, messages.last_name_required),
                "trim": True,
                "minlength": (constraints.name.min_length, messages.last_name_min),
                "maxlength": (constraints.name.max_length, messages.last_name_max),
            },
            "avatar": {
                "type": "String",
                "default": DEFAULT_AVATAR,
                "match": (patterns.image_url, messages.avatar_url),
            },
        },
        "address": {
            "street": {"type": "String", "trim": True},
            "city": {"type": "String", "trim": True},
            "state": {"type": "String", "trim": True},
            "zip_code": {"type": "String", "trim": True},
            "country": {"type": "String", "trim": True},
        },
        "account_status": {
            "type": "String",
            "enum": list(ACCOUNT_STATUSES),
            "default": "pending",
            "index": True,
        },
        "role": {
            "type": "String",
            "required": (required.role, messages.role_required),
            "enum": list(ROLES),
            "default": "user",
        },
        "social_media_links": {
            "facebook": {"type": "String", "match": (patterns.facebook, messages.facebook_url)},
            "linkedin": {"type": "String", "match": (patterns.linkedin, messages.linkedin_url)},
            "twitter": {"type": "String", "match": (patterns.twitter, messages.twitter_url)},
        },
        "security": {
            "failed_login_attempts": {"type": "Number", "default": 0, "min": 0},
            "lock_until": {"type": "Date", "default": None},
            "last_login": {"type": "Date", "default": None},
            "is_email_verified": {"type": "Boolean", "default": False},
            "email_verification_token": {"type": "String", "select": False},
            "auth": {
                # session tokens, one per device
                "jwt_tokens": {"type": ["String"], "select": False},
                "reset_password_token": {"type": "String", "select": False},
                "reset_password_expires": {"type": "Date", "select": False},
            },
        },
        "login_history": [
            {
                "ip_address": {
                    "type": "String",
                    "required": (required.ip_address, messages.ip_address_required),
                    "trim": True,
                    "validate": {"validator": is_ip_address, "message": messages.ip_address},
                },
                "login_at": {"type": "Date", "default": utcnow},
                "success": {"type": "Boolean", "required": True, "default": False},
                "user_agent": {"type": "String", "trim": True, "default": "unknown"},
            }
        ],
        "deleted_at": {"type": "Date", "default": None},
    }


def build_account_config(
    rules: ValidationRules = DEFAULT_RULES,
    security: Optional[SecuritySettings] = None,
) -> Dict[str, Any]:
    """Account model configuration for ``SchemaBuilder.create_model``"""
    security = security or SecuritySettings()
    return {
        "fields": build_account_fields(rules),
        "options": {
            "schema_options": {
                "timestamps": True,
                "to_json": {"virtuals": True, "transform": _strip_password},
            },
            "indexes": [
                {"fields": {"username": 1}, "options": {"unique": True, "sparse": True}},
                {"fields": {"email": 1}, "options": {"unique": True}},
                {"fields": {"phone_number": 1}, "options": {"unique": True, "sparse": True}},
                {"fields": {"account_status": 1}, "options": {}},
                {"fields": {"profile.first_name": 1, "profile.last_name": 1}, "options": {}},
                {"fields": {"created_at": 1}, "options": {}},
            ],
        },
        "hooks": {
            "pre": {
                "save": make_pre_save(security.bcrypt_rounds),
                "find": pre_find,
                "delete_one": prevent_hard_delete,
            },
            "post": {
                "save": [hide_password, log_status_change],
            },
        },
        "methods": account_methods(security),
        "statics": dict(ACCOUNT_STATICS),
        "virtuals": {
            "full_name": {"get": full_name},
            "locked_status": {"get": locked_status},
        },
    }
