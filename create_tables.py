"""
Script to create all database tables.

Creates every table defined in the models and seeds the token counter so
the first issued token is TOKEN_NUMBER_START.
"""
import asyncio
from printflow.database import create_all, drop_all


async def create_all_tables():
    """Create all tables in the database."""
    await create_all()
    print("All tables created successfully!")


async def drop_all_tables():
    """Drop all tables in the database (for testing)."""
    await drop_all()
    print("All tables dropped!")


async def main():
    """Main entry point."""
    print("Creating database tables...")
    await create_all_tables()
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
