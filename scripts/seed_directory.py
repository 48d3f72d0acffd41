#!/usr/bin/env python3
"""Seed a demo directory (users and one unit) and print the IDs as env exports."""

import asyncio

from holdgate.db.base import async_session_factory, close_db, init_db
from holdgate.db.repositories import UnitRepository, UserRepository
from holdgate.models import Role


async def seed() -> dict[str, str]:
    await init_db()
    async with async_session_factory() as session:
        users = UserRepository(session)
        ids = {
            "HOLDGATE_AGENT_ID": (await users.create("Demo Agent", Role.AGENT)).actor_id,
            "HOLDGATE_MANAGER_ID": (await users.create("Demo Manager", Role.MANAGER)).actor_id,
            "HOLDGATE_DESIGNER_ID": (await users.create("Demo Designer", Role.DESIGNER)).actor_id,
            "HOLDGATE_FITTER_ID": (await users.create("Demo Fitter", Role.FITTER)).actor_id,
        }
        unit = await UnitRepository(session).create(
            "DEMO-001", city="Pune", area="Baner", width_cm=600, height_cm=300
        )
        ids["HOLDGATE_UNIT_ID"] = unit.unit_id
        await session.commit()
    await close_db()
    return {name: str(value) for name, value in ids.items()}


if __name__ == "__main__":
    for name, value in asyncio.run(seed()).items():
        print(f"export {name}={value}")
