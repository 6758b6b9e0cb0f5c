"""
Seed Data Generator — realistic performance history for development.

Fills the key/value store with a month of session outcomes so the
recommendation engine leaves its fallback path immediately.

Run: python scripts/seed_data.py [count]
"""

import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from cadence.data import Catalog, Context, Database, Storage
from cadence.services.context import energy_level, infer_model_work_type, time_of_day
from cadence.services.performance import PerformanceRecorder


def seed(num_records: int = 60) -> None:
    db = Database()
    db.connect()
    storage = Storage(db.conn)
    catalog = Catalog()
    models = catalog.list()

    # Timestamps are replayed in order so pruning sees a moving "now"
    current = {"now": datetime.now() - timedelta(days=30)}
    recorder = PerformanceRecorder(
        storage,
        context_provider=lambda: None,
        clock=lambda: current["now"],
    )

    base_date = current["now"]
    step = timedelta(days=30) / max(num_records, 1)
    for i in range(num_records):
        model = random.choice(models)
        when = base_date + step * i
        when = when.replace(hour=random.randint(8, 20), minute=random.randint(0, 59))
        current["now"] = when

        # Longer models get abandoned more often late in the day
        completion = random.uniform(0.6, 1.0)
        if when.hour >= 17 and model.work_duration >= 60:
            completion *= random.uniform(0.6, 0.9)
        satisfaction = round(random.uniform(2.5, 5.0), 1)
        cycles = model.cycles or 1
        duration = model.work_duration * cycles + model.rest_duration * max(cycles - 1, 1)

        context = Context(
            time_of_day=time_of_day(when.hour),
            energy_level=energy_level(when.hour),
            work_type=infer_model_work_type(model),
            session_duration=duration * completion,
            day_of_week=when.weekday(),
        )
        recorder.record(model.id, duration * completion, completion, satisfaction, context)

    db.close()
    print(f"Seeded {len(recorder.history)} performance records across {len(models)} models.")


if __name__ == "__main__":
    count = int(sys.argv[1]) if len(sys.argv) > 1 else 60
    seed(count)
