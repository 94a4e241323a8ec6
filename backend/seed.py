"""
Idempotent seed: ensure an ADMIN account and, optionally, a sample package.
Admin credentials come from SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD (local/dev defaults).
"""
import asyncio
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

SEED_ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@taxdesk.local")
SEED_ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "Admin123!")
SEED_ADMIN_NAME = os.environ.get("SEED_ADMIN_NAME", "Administrator")

SAMPLE_PACKAGE = {
    "name": "Vehicle Tax Renewal",
    "image": "https://utfs.io/f/sample-vehicle-tax.png",
    "description": "We renew your annual vehicle tax on your behalf.",
    "price": "50000",
    "required_fields": [
        {"field_name": "ktp_number", "field_label": "ID card number", "field_type": "TEXT", "is_required": True, "order": 0},
        {"field_name": "phone", "field_label": "Phone", "field_type": "PHONE", "is_required": True, "order": 1},
        {"field_name": "vehicle_type", "field_label": "Vehicle type", "field_type": "SELECT", "is_required": True,
         "options": ["Motorcycle", "Car"], "order": 2},
        {"field_name": "stnk_scan", "field_label": "Registration scan", "field_type": "FILE", "is_required": True, "order": 3},
        {"field_name": "notes", "field_label": "Notes", "field_type": "TEXTAREA", "is_required": False, "order": 4},
    ],
}


async def seed_database():
    from database import database, get_db_context
    from models import UserRole
    from services import package_service, user_service

    async with get_db_context() as db:
        database.db = db
        print("Seeding database (idempotent)...")

        admin = await db.users.find_one({"email": SEED_ADMIN_EMAIL.lower()}, {"_id": 0})
        if not admin:
            admin = await user_service.create_user(
                SEED_ADMIN_NAME, SEED_ADMIN_EMAIL, SEED_ADMIN_PASSWORD, role=UserRole.ADMIN
            )
            print(f"  ADMIN created: {SEED_ADMIN_EMAIL}")
        else:
            print(f"  ADMIN already exists: {SEED_ADMIN_EMAIL}")

        if os.environ.get("SEED_SAMPLE_PACKAGE", "").strip().lower() == "true":
            if await db.packages.count_documents({"deleted_at": None}) == 0:
                package = await package_service.create_package(admin, SAMPLE_PACKAGE)
                print(f"  Sample package created: {package['package_id']}")
            else:
                print("  Sample package: skipped (catalog not empty)")

        print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed_database())
