"""
Add database-level double-booking protection to the appointments table
Run with: python -m migrations.add_appointment_overlap_constraint

Installs on an existing PostgreSQL database what create_all installs on a new one:
- partial unique index on (doctor_id, start_at) for non-cancelled appointments
- btree_gist extension and the exclusion constraint rejecting overlapping intervals
"""

import asyncio
import sys
from pathlib import Path

from sqlalchemy import text

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import DATABASE_URL  # noqa: E402
from app.database import create_engine_from_url  # noqa: E402
from app.models import (  # noqa: E402
    ADD_APPOINTMENT_OVERLAP_CONSTRAINT,
    APPOINTMENT_OVERLAP_CONSTRAINT,
    CREATE_BTREE_GIST_EXTENSION,
)

CREATE_ACTIVE_START_INDEX = """
CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_doctor_start_active
ON appointments (doctor_id, start_at)
WHERE state <> 'cancelled'
"""


async def upgrade():
    """Add the unique index and exclusion constraint if missing"""
    engine = create_engine_from_url(DATABASE_URL)
    if engine.dialect.name != "postgresql":
        print(f"⚠️  Skipping: exclusion constraints need PostgreSQL, got {engine.dialect.name}")
        await engine.dispose()
        return

    print("🚀 Starting appointments constraint migration...")
    try:
        async with engine.begin() as conn:
            overlapping = await conn.execute(
                text(
                    """
                    SELECT a.id, b.id FROM appointments a
                    JOIN appointments b
                      ON a.doctor_id = b.doctor_id AND a.id < b.id
                     AND a.start_at < b.end_at AND b.start_at < a.end_at
                    WHERE a.state <> 'cancelled' AND b.state <> 'cancelled'
                    """
                )
            )
            pairs = overlapping.fetchall()
            if pairs:
                print(f"❌ Found {len(pairs)} overlapping appointment pairs, resolve them first:")
                for first, second in pairs:
                    print(f"   - {first} <-> {second}")
                sys.exit(1)

            await conn.execute(text(CREATE_ACTIVE_START_INDEX))
            print("✅ Partial unique index uq_appointments_doctor_start_active ready")

            await conn.execute(text(CREATE_BTREE_GIST_EXTENSION))
            print("✅ btree_gist extension ready")

            exists = await conn.execute(
                text("SELECT 1 FROM pg_constraint WHERE conname = :name"),
                {"name": APPOINTMENT_OVERLAP_CONSTRAINT},
            )
            if exists.scalar():
                print(f"✅ Constraint {APPOINTMENT_OVERLAP_CONSTRAINT} already exists")
            else:
                await conn.execute(text(ADD_APPOINTMENT_OVERLAP_CONSTRAINT))
                print(f"✅ Constraint {APPOINTMENT_OVERLAP_CONSTRAINT} added")
    finally:
        await engine.dispose()

    print("🎉 Migration completed successfully!")


if __name__ == "__main__":
    asyncio.run(upgrade())
