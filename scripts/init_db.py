#!/usr/bin/env python3
"""Initialize the database and create the signals table."""

import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.config import get_settings
from app.storage.database import init_database


async def main():
    print("Initializing database...")
    db = await init_database()
    print("Database initialized successfully!")
    print(f"Tables created: {get_settings().signals_table}")
    await db.close()


if __name__ == "__main__":
    asyncio.run(main())
