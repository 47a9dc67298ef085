# ABOUTME: Writes synthetic review and assignment files for trying the ganbarometer CLI.
# ABOUTME: Simulates a few days of sessions with realistic gaps and miss rates.

"""
Usage:
    python scripts/make_sample_data.py --out-dir data/sample
    ganbarometer show --events data/sample/reviews.csv --assignments data/sample/assignments.json
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pandas as pd
import typer

app = typer.Typer(help="Generate synthetic review history.")


@app.command()
def main(
    out_dir: Path = typer.Option(Path("data/sample"), "--out-dir", help="Directory for reviews.csv and assignments.json."),
    days: int = typer.Option(3, "--days", help="Days of history to simulate."),
    seed: int = typer.Option(42, "--seed", help="Random seed."),
) -> None:
    rng = np.random.default_rng(seed)
    end = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    start = end - timedelta(days=days)

    rows = []
    subject = 1
    for day in range(days):
        for hour in rng.choice([7, 12, 19, 22], size=2, replace=False):
            t = start + timedelta(days=day, hours=int(hour))
            for _ in range(int(rng.integers(20, 80))):
                # Mostly quick answers with the occasional long pause.
                t += timedelta(seconds=float(rng.choice([rng.gamma(2.0, 6.0), rng.uniform(60, 240)], p=[0.9, 0.1])))
                rows.append(
                    {
                        "timestamp": t.isoformat(),
                        "subject_id": subject,
                        "incorrect_meaning_count": int(rng.random() < 0.12),
                        "incorrect_reading_count": int(rng.random() < 0.10),
                    }
                )
                subject += 1

    assignments = [
        {"data": {"srs_stage": int(stage), "subject_type": str(kind)}}
        for stage, kind in zip(
            rng.integers(1, 9, size=400),
            rng.choice(["radical", "kanji", "vocabulary"], size=400, p=[0.1, 0.3, 0.6]),
        )
    ]

    out_dir.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows).to_csv(out_dir / "reviews.csv", index=False)
    (out_dir / "assignments.json").write_text(json.dumps(assignments, indent=2), encoding="utf-8")
    typer.echo(f"[sample] Wrote {len(rows)} reviews and {len(assignments)} assignments to {out_dir}")


if __name__ == "__main__":
    app()
