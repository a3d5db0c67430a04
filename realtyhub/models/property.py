"""Property listing model configuration"""

from datetime import datetime
from typing import Any, Dict

from ..db.document import Document
from ..db.schema import utcnow
from .validation_rules import DEFAULT_RULES, ValidationRules

PROPERTY_MODEL_NAME = "Property"
PROPERTY_TYPES = ("Apartment", "House", "Condo", "Land", "Villa", "Office", "Studio")
LISTING_STATUSES = ("Available", "Sold", "Rented", "Pending")
OFFER_TYPES = ("Sale", "Rent")


def is_whole_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or (isinstance(value, float) and value.is_integer())


def full_address(listing: Document) -> str:
    address = listing.address
    return f"{address.street}, {address.city}, {address.state}, {address.zip_code}, {address.country}"


def build_property_config(rules: ValidationRules = DEFAULT_RULES) -> Dict[str, Any]:
    """Property model configuration for ``SchemaBuilder.create_model``"""
    patterns = rules.patterns
    current_year = datetime.now().year

    fields = {
        "title": {
            "type": "String",
            "required": (True, "Property title is required."),
            "trim": True,
            "maxlength": (100, "Title cannot exceed 100 characters."),
        },
        "description": {
            "type": "String",
            "required": (True, "Description is required."),
            "maxlength": (500, "Description cannot exceed 500 characters."),
        },
        "property_type": {
            "type": "String",
            "required": (True, "Property type is required."),
            "enum": list(PROPERTY_TYPES),
        },
        "phone_number": {
            "type": "String",
            "required": (True, "Phone number is required."),
            "match": (patterns.phone_number, "Please provide a valid phone number."),
        },
        "price": {
            "type": "Number",
            "required": (True, "Price is required."),
            "min": (0, "Price must be a positive number."),
            "validate": {"validator": is_whole_number, "message": "Price must be a whole number (integer)."},
        },
        "status": {"type": "String", "enum": list(LISTING_STATUSES), "default": "Available"},
        "size": {
            "type": "Number",
            "required": (True, "Property size is required."),
            "min": (0, "Size must be a positive number."),
        },
        "bedrooms": {
            "type": "Number",
            "required": (True, "Number of bedrooms is required."),
            "min": (1, "Bedrooms must be at least 1."),
        },
        "bathrooms": {
            "type": "Number",
            "required": (True, "Number of bathrooms is required."),
            "min": (1, "Bathrooms must be at least 1."),
        },
        "rooms": {
            "type": "Number",
            "required": (True, "Number of rooms is required."),
            "min": (1, "Rooms must be at least 1."),
        },
        "offer_type": {
            "type": "String",
            "required": (True, "Offer type is required."),
            "enum": list(OFFER_TYPES),
        },
        "wifi": {"type": "Boolean", "default": False},
        "pet_friendly": {"type": "Boolean", "default": False},
        "parking": {"type": "Boolean", "default": False},
        "year_built": {
            "type": "Number",
            "min": (1800, "Year built must be after 1800."),
            "max": (current_year, "Year built cannot be in the future."),
        },
        "available_from": {
            "type": "Date",
            "required": (True, "Available date is required."),
            "default": utcnow,
        },
        "user_id": {"type": "String", "required": True},
        "address": {
            "street": {
                "type": "String",
                "required": (True, "Street address is required."),
                "maxlength": (100, "Street address cannot exceed 100 characters."),
            },
            "city": {"type": "String", "required": (True, "City is required.")},
            "state": {"type": "String", "required": (True, "State is required.")},
            "zip_code": {
                "type": "String",
                "required": (True, "Zip code is required."),
                "match": (patterns.zip_code, "Please provide a valid zip code."),
            },
            "country": {"type": "String", "required": (True, "Country is required."), "default": "USA"},
        },
        "images": [
            {
                "type": "String",
                "match": (patterns.image_url, "Please provide a valid image URL (jpg, jpeg, png, or webp)."),
            }
        ],
        "amenities": {
            "type": ["String"],
            "default": list,
            "validate": {
                "validator": lambda items: all(isinstance(item, str) and item.strip() for item in items),
                "message": "All amenities must be valid strings.",
            },
        },
        "agent_id": {
            "type": "ObjectId",
            "required": (True, "An agent is required to manage this property."),
        },
        "is_featured": {"type": "Boolean", "default": False},
        "coordinates": {
            "lat": {
                "type": "Number",
                "required": (True, "Latitude is required."),
                "min": (-90, "Latitude must be between -90 and 90 degrees."),
                "max": (90, "Latitude must be between -90 and 90 degrees."),
            },
            "lng": {
                "type": "Number",
                "required": (True, "Longitude is required."),
                "min": (-180, "Longitude must be between -180 and 180 degrees."),
                "max": (180, "Longitude must be between -180 and 180 degrees."),
            },
        },
    }

    return {
        "fields": fields,
        "options": {
            "schema_options": {
                "timestamps": True,
                "collection": "properties",
                "to_json": {"virtuals": True},
            },
            "indexes": [
                {"fields": {"price": 1}},
                {"fields": {"status": 1}},
                {"fields": {"agent_id": 1}},
                {"fields": {"offer_type": 1}},
            ],
        },
        "virtuals": {
            "full_address": {"get": full_address},
        },
    }
