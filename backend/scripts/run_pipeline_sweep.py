"""Run the video pipeline sweep once.

Usage:
    cd backend
    python -m scripts.run_pipeline_sweep
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from safezone.core.config import settings
from safezone.core.database import async_session_maker, engine
from safezone.core.logging import setup_logging
from safezone.modules.pipeline.runtime import build_runtime


async def main() -> int:
    """Fail stale jobs and remove orphaned artifacts."""
    setup_logging(level=settings.LOG_LEVEL, json_format=False)

    print("\n" + "=" * 60)
    print("Running Video Pipeline Sweep")
    print("=" * 60)

    try:
        runtime = build_runtime(settings, async_session_maker)
        report = await runtime.sweeper.run()
    finally:
        await engine.dispose()

    print("\nResults:")
    print(f"  Stale jobs failed: {report.stale_failed}")
    print(f"  Staged files removed: {report.staged_removed}")
    print(f"  Orphaned artifacts removed: {report.orphans_removed}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
