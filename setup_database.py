"""
Create the pgvector extension and the course tables
"""

import asyncio
import sys

from database.connection import db_manager, init_database
from etl.config import LOGGING_CONFIG
from etl.logging_config import setup_logging


async def main():
    print("Initializing database schema...")
    try:
        success = await init_database()
    finally:
        await db_manager.close()
    if success:
        print("Database ready: vector extension, course_files and course_chunks in place")
    else:
        print("Database initialization failed!")
    return success


if __name__ == "__main__":
    setup_logging(**{**LOGGING_CONFIG, 'enable_structured_logging': False})
    success = asyncio.run(main())
    sys.exit(0 if success else 1)
