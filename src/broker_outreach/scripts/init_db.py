"""Initialize the outreach database: create it if needed, apply the schema, seed templates."""

from __future__ import annotations

import asyncio

import asyncpg

from broker_outreach.core.config import Settings
from broker_outreach.core.database_pg import SCHEMA_SQL, PostgresDatabase
from broker_outreach.templates import seed_default_templates


async def run_migration() -> None:
    settings = Settings()

    # Connect to the maintenance database to create the target database if needed
    base_url, db_name = settings.database_url.rsplit("/", 1)

    try:
        conn = await asyncpg.connect(f"{base_url}/postgres")
        try:
            exists = await conn.fetchval(
                "SELECT 1 FROM pg_database WHERE datname = $1", db_name
            )
            if not exists:
                await conn.execute(f'CREATE DATABASE "{db_name}"')
                print(f"Created database: {db_name}")
            else:
                print(f"Database already exists: {db_name}")
        finally:
            await conn.close()
    except (asyncpg.PostgresError, OSError) as e:
        print(f"Note: Could not create database (may already exist): {e}")

    conn = await asyncpg.connect(settings.database_url)
    try:
        await conn.execute(SCHEMA_SQL)
        print("Schema applied successfully.")
    finally:
        await conn.close()

    db = PostgresDatabase(settings)
    await db.connect()
    try:
        added = await seed_default_templates(db)
        print(f"Seeded {added} default email templates.")
    finally:
        await db.close()


def main() -> None:
    asyncio.run(run_migration())


if __name__ == "__main__":
    main()
