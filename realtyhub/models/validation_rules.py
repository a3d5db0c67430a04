"""Validation constants shared by the model configurations.

Bounds, patterns and messages live here so deployments can override them
from settings.yaml without touching model code.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field


class LengthBounds(BaseModel):
    min_length: int
    max_length: Optional[int] = None


class InputConstraints(BaseModel):
    username: LengthBounds = Field(default_factory=lambda: LengthBounds(min_length=3, max_length=30))
    name: LengthBounds = Field(default_factory=lambda: LengthBounds(min_length=2, max_length=50))
    password: LengthBounds = Field(default_factory=lambda: LengthBounds(min_length=6))


class RequiredFields(BaseModel):
    """Which account fields are mandatory"""
    username: bool = True
    email: bool = True
    password: bool = True
    first_name: bool = True
    last_name: bool = True
    role: bool = True
    ip_address: bool = True


class ValidationPatterns(BaseModel):
    username: str = r"^[a-zA-Z0-9_]+$"
    email: str = r"^\S+@\S+\.\S+$"
    phone_number: str = r"^\+?[1-9]\d{1,14}$"
    image_url: str = r"(?i)^https?://.*\.(?:png|jpg|jpeg|gif|bmp|webp)(\?.*)?$"
    zip_code: str = r"^\d{5}(-\d{4})?$"
    ipv4: str = (
        r"^(25[0-5]|2[0-4][0-9]|1[0-9]{2}|[1-9]?[0-9])"
        r"(\.(25[0-5]|2[0-4][0-9]|1[0-9]{2}|[1-9]?[0-9])){3}$"
    )
    ipv6: str = r"^(?:[a-fA-F0-9]{1,4}:){7}[a-fA-F0-9]{1,4}$"
    facebook: str = r"(?i)^https?://(www\.)?facebook\.com/[A-Za-z0-9_.-]+/?$"
    linkedin: str = r"(?i)^https?://(www\.)?linkedin\.com/in/[A-Za-z0-9_-]+/?$"
    twitter: str = r"(?i)^https?://(www\.)?twitter\.com/[A-Za-z0-9_]+/?$"
    password_medium: str = r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)"
    password_strong: str = r"^(?=.*\d)(?=.*[a-z])(?=.*[A-Z])(?=.*[!@#$%^&*])"


class ValidationMessages(BaseModel):
    username_required: str = "Username is required"
    email_required: str = "Email is required"
    password_required: str = "Password is required"
    first_name_required: str = "First name is required"
    last_name_required: str = "Last name is required"
    role_required: str = "Role is required"
    ip_address_required: str = "IP address is required"

    username_min: str = "Username must be at least 3 characters long"
    username_max: str = "Username must be less than 30 characters long"
    first_name_min: str = "First name must be at least 2 characters long"
    first_name_max: str = "First name must be less than 50 characters long"
    last_name_min: str = "Last name must be at least 2 characters long"
    last_name_max: str = "Last name must be less than 50 characters long"
    password_min: str = "Password must be at least 6 characters long"

    username_pattern: str = "Username can only contain letters, numbers, and underscores"
    email_pattern: str = "Please enter a valid email address"
    phone_pattern: str = "Please enter a valid phone number"
    avatar_url: str = "Please enter a valid URL for avatar"
    password_pattern: str = (
        "Password must contain at least one number, one uppercase letter and one lowercase letter"
    )
    facebook_url: str = "Please enter a valid Facebook URL"
    twitter_url: str = "Please enter a valid Twitter URL"
    linkedin_url: str = "Please enter a valid LinkedIn URL"
    ip_address: str = "Please enter a valid IP address"


class ValidationRules(BaseModel):
    constraints: InputConstraints = Field(default_factory=InputConstraints)
    required: RequiredFields = Field(default_factory=RequiredFields)
    patterns: ValidationPatterns = Field(default_factory=ValidationPatterns)
    messages: ValidationMessages = Field(default_factory=ValidationMessages)

    def pattern(self, name: str) -> "re.Pattern[str]":
        """Compiled regex for a named pattern"""
        return re.compile(getattr(self.patterns, name))


DEFAULT_RULES = ValidationRules()
