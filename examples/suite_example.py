"""Example: record a latency series and run a metric suite over it.

Run with:
    python examples/suite_example.py

The suite in ``journal.yaml`` checks that latencies stay below 250 ms and
that consecutive samples do not jump by more than 50%. Failing metrics are
reported through the ``app`` logger, so the reports show up on stderr.
"""

import asyncio
import random
from pathlib import Path

import journalipy

CONFIG = Path(__file__).with_name("journal.yaml")


async def record_latencies(samples: int = 20) -> None:
    """Post simulated request latencies, with a spike near the end."""
    for i in range(samples):
        latency = random.uniform(80, 120) if i != samples - 3 else 900.0
        await journalipy.info(latency, topic="latency", env="staging", wait=True)


async def main() -> None:
    journalipy.config(CONFIG)

    async with journalipy.timed("recording latencies"):
        await record_latencies()

    suite = journalipy.get_suite("service-health")
    results = await suite.run({"env": "staging"})
    for metric, outcome in results.items():
        print(f"{metric}: {getattr(outcome, 'value', outcome)}")

    await journalipy.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
