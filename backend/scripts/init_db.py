#!/usr/bin/env python3
"""
Initialize the GearShop database

Creates every table declared in gearshop.models and, optionally, builds the
chatbot product search index from the catalog.

Usage:
    export DATABASE_URL="postgresql://..."
    python3 backend/scripts/init_db.py
    python3 backend/scripts/init_db.py --reindex
"""
import argparse
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from dotenv import load_dotenv

# Load environment
load_dotenv(BACKEND_DIR / '.env')

from gearshop.core.config import settings
from gearshop.core.database import create_tables, get_db_connection_dict_with_retry
from gearshop.services.chatbot.vector_store import get_vector_store


def check_connection() -> bool:
    print("\n🔄 Testing database connection...")
    try:
        conn = get_db_connection_dict_with_retry()
        conn.close()
    except Exception as e:
        print(f"❌ Connection failed: {e}")
        return False

    print("✅ Connected")
    return True


def main():
    """Main execution"""
    parser = argparse.ArgumentParser(description="Create GearShop tables")
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Also embed every product into the chatbot search index"
    )
    args = parser.parse_args()

    print("=" * 60)
    print("🗄️  GEARSHOP DATABASE INITIALIZATION")
    print("=" * 60)

    if not settings.DATABASE_URL:
        print("❌ Error: DATABASE_URL environment variable not set")
        return 1

    if not check_connection():
        return 1

    print("\n📦 Creating tables...")
    create_tables()
    print("✅ Tables ready")

    if args.reindex:
        print(f"\n🔎 Building product index ({settings.EMBEDDING_MODEL})...")
        count = get_vector_store().reload_from_repository()
        print(f"✅ Indexed {count} products into {settings.VECTOR_STORE_PATH}")

    print("\n" + "=" * 60)
    print("✅ DATABASE INITIALIZATION COMPLETE")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
