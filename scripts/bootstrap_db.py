"""Create the room-state schema for the database-backed signaling store."""
from __future__ import annotations

import argparse
import asyncio

from sqlalchemy import delete

from pinrelay.core.config import settings
from pinrelay.db.session import build_engine, build_sessionmaker
from pinrelay.models.base import Base
from pinrelay.models.room_state import RoomState


async def bootstrap(database_url: str, *, reset: bool = False) -> None:
	engine = build_engine(database_url)
	try:
		async with engine.begin() as conn:
			await conn.run_sync(Base.metadata.create_all)

		if reset:
			sessions = build_sessionmaker(engine)
			async with sessions() as session, session.begin():
				await session.execute(delete(RoomState))
	finally:
		await engine.dispose()


def main() -> None:
	parser = argparse.ArgumentParser(description=__doc__)
	parser.add_argument("--database-url", default=settings.database_url)
	parser.add_argument("--reset", action="store_true", help="drop every stored room")
	args = parser.parse_args()

	asyncio.run(bootstrap(args.database_url, reset=args.reset))
	print(f"Room store ready at {args.database_url}")


if __name__ == "__main__":
	main()
