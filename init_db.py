import logging

from config import ADMIN_IDS, DATABASE_URL
from database import Database
from ledger import Ledger

logger = logging.getLogger(__name__)


def init_database(db_url: str = DATABASE_URL) -> Database:
    """Initialize database and seed the admin index"""
    db = Database(db_url)
    print("✅ Database tables created successfully!")

    ledger = Ledger(db)
    if db.get('bot:admins') is None and ADMIN_IDS:
        ledger.set_admin_ids(ADMIN_IDS)
        print(f"✅ Admin index seeded: {', '.join(str(a) for a in ADMIN_IDS)}")
    for admin_id in ledger.admin_ids():
        ledger.ensure_user(admin_id)
    return db


if __name__ == "__main__":
    print("Initializing database...")
    init_database()
    print("Done!")
