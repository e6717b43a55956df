"""
Demo fixture rows: three verified tailors with one design each and a customer.

Run on startup when SEED_DATA=true. Seeding is skipped once the first
fixture tailor exists, so restarts do not duplicate rows.
"""
import logging
from decimal import Decimal

from .storage import Storage

logger = logging.getLogger(__name__)

FIXTURE_TAILORS = [
    {
        "tailor": {
            "name": "Adebayo Tailoring",
            "email": "adebayo@tailoring.com",
            "phone": "+234 803 555 0101",
            "address": "123 Fashion Street, Lagos, Nigeria",
            "description": "Master tailor specializing in traditional Nigerian wear.",
            "is_verified": True,
        },
        "design": {
            "name": "Premium Agbada Collection",
            "description": "Handcrafted traditional Agbada with modern cuts.",
            "category": "agbada",
            "price": Decimal("45000"),
            "tags": ["traditional", "formal", "wedding"],
            "is_trending": True,
        },
    },
    {
        "tailor": {
            "name": "Kemi's Couture",
            "email": "kemi@couture.com",
            "phone": "+234 805 555 0102",
            "address": "456 Craft Avenue, Abuja, Nigeria",
            "description": "Contemporary designer known for Ankara styles.",
            "is_verified": True,
        },
        "design": {
            "name": "Modern Ankara Styles",
            "description": "Contemporary Ankara designs with custom fitting.",
            "category": "ankara",
            "price": Decimal("32000"),
            "tags": ["contemporary", "colorful", "everyday"],
        },
    },
    {
        "tailor": {
            "name": "Emeka Designs",
            "email": "emeka@designs.com",
            "phone": "+234 807 555 0103",
            "address": "789 Heritage Road, Kano, Nigeria",
            "description": "Classic Dashiki and ceremonial wear.",
            "is_verified": True,
        },
        "design": {
            "name": "Classic Dashiki Collection",
            "description": "Dashiki designs with traditional embroidery.",
            "category": "dashiki",
            "price": Decimal("28000"),
            "tags": ["authentic", "embroidered", "cultural"],
        },
    },
]

FIXTURE_CUSTOMER = {
    "name": "Demo Customer",
    "email": "customer@example.com",
    "phone": "+234 809 555 0199",
    "address": "12 Marina Road, Lagos, Nigeria",
}


def seed_marketplace(storage: Storage) -> bool:
    """
    Insert the fixture rows.

    Returns:
        True if rows were inserted, False if the fixtures were already present
    """
    if storage.get_tailor_by_email(FIXTURE_TAILORS[0]["tailor"]["email"]) is not None:
        logger.info("Fixture data already present, skipping seed")
        return False

    for fixture in FIXTURE_TAILORS:
        tailor = storage.create_tailor(dict(fixture["tailor"]))
        storage.create_design({**fixture["design"], "tailor_id": tailor.id})

    if storage.get_user_by_email(FIXTURE_CUSTOMER["email"]) is None:
        storage.create_user(dict(FIXTURE_CUSTOMER))

    logger.info(f"Seeded {len(FIXTURE_TAILORS)} tailors with designs and a demo customer")
    return True
