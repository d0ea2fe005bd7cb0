"""
Seed script for the merchant alias table.
Run with: cd backend && python postgres_migration/seed_merchant_aliases.py
"""

import sys
from pathlib import Path

# Allow running from either backend/ or backend/postgres_migration/
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.database import engine, SessionLocal, Base
from app.models import MerchantAlias
from app.services.merchant_aliases_seed import seed_merchant_aliases


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        print("Seeding merchant aliases...")
        written = seed_merchant_aliases(db)
        print(f"✓ Wrote {written} aliases")
        print(f"Total aliases: {db.query(MerchantAlias).count()}")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
