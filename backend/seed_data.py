"""
Database seeding script for development data.

Creates representatives, a route and its PDVs around central Lima.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.models.user import User
from backend.app.models.pdv import Pdv
from sqlalchemy import select

ROUTE_ID = 1

PDVS = [
    ("Bodega San Martin", -12.0464, -77.0428),
    ("Minimarket Plaza Mayor", -12.0453, -77.0311),
    ("Botica Jiron de la Union", -12.0500, -77.0340),
    ("Bodega Barrios Altos", -12.0520, -77.0230),
]

REPRESENTATIVES = [
    ("rep.lima01", "Rosa Quispe", ROUTE_ID),
    ("rep.lima02", "Carlos Huaman", ROUTE_ID),
    ("rep.floater", "Ana Torres", None),
]


async def seed_data():
    """
    Seed representatives and PDVs.

    Creates:
    - 2 representatives assigned to route 1
    - 1 representative without a route
    - 4 PDVs on route 1
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting seeding...")

        result = await db.execute(select(User).where(User.username == REPRESENTATIVES[0][0]))
        if result.scalar_one_or_none():
            print("Seed data already present, skipping")
            return

        for username, full_name, route_id in REPRESENTATIVES:
            db.add(User(username=username, full_name=full_name, assigned_route_id=route_id, is_active=True))
            print(f"Created representative {username} (route: {route_id})")

        for name, latitude, longitude in PDVS:
            db.add(Pdv(name=name, latitude=latitude, longitude=longitude, route_id=ROUTE_ID, is_active=True))
            print(f"Created PDV {name}")

        await db.commit()
        print("Seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_data())
