import argparse
import asyncio
import os
import sys

# Add the project root to the Python path
sys.path.append(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)

from src.config.settings import settings
from src.database.connection import Database


async def init_db(drop_tables: bool = False):
    database = Database.from_settings(settings)
    try:
        if drop_tables:
            print("Dropping all tables before creating them...")
        await database.create_all(drop_first=drop_tables)
        print("Tables created: payments, enrollments, webhook_notifications, outbound webhooks.")
    finally:
        await database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the database.")
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop all existing tables before creating new ones.",
    )
    args = parser.parse_args()

    asyncio.run(init_db(drop_tables=args.drop))
    print("Database initialization complete.")
