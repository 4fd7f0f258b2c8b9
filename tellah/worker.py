"""
Tellah - Periodic Extraction Worker

Background worker that periodically re-runs pattern extraction for every
project that has collected new ratings since its last snapshot.

The worker:
  1. Lists all projects
  2. For each, checks for outputs rated since the latest extraction
  3. Runs an extraction pass when there are any, skips the project otherwise
  4. Logs a per-cycle summary

Run modes:
  - One-shot: python -m tellah.worker --once
  - Single project: python -m tellah.worker --project-id 3
  - Daemon:   python -m tellah.worker --interval 3600
"""

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List

from tellah import storage
from tellah.extraction import FULL, INCREMENTAL, run_extraction, select_rated_outputs

logger = logging.getLogger(__name__)


class ExtractionRunResult:
    """Result of a single extraction attempt for one project."""

    def __init__(self, project_id: int, project_name: str):
        self.project_id = project_id
        self.project_name = project_name
        self.status = "pending"
        self.analyzed_outputs = 0
        self.extraction_id = None
        self.success_rate = None
        self.confidence_score = None
        self.error = ""
        self.started_at = datetime.now(timezone.utc).isoformat()
        self.completed_at = ""
        self.duration_ms = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "project_name": self.project_name,
            "status": self.status,
            "analyzed_outputs": self.analyzed_outputs,
            "extraction_id": self.extraction_id,
            "success_rate": self.success_rate,
            "confidence_score": self.confidence_score,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
        }


class ExtractionWorker:
    """
    Background worker for continuous pattern extraction.

    Usage:
        worker = ExtractionWorker()

        # One-shot extraction for all projects with new ratings
        results = await worker.extract_all()

        # Extract for a specific project
        result = await worker.extract_project(3)

        # Run as daemon
        await worker.run_daemon(interval_seconds=3600)
    """

    def __init__(self, mode: str = INCREMENTAL):
        self.mode = mode
        self._running = False

    async def extract_project(self, project_id: int) -> ExtractionRunResult:
        """
        Run extraction for a single project.

        Returns a result with status "skipped" when there is nothing new to
        analyze, "error" when the project is missing or the pass failed.
        """
        project = storage.get_project(project_id)
        if not project:
            result = ExtractionRunResult(project_id, "unknown")
            result.status = "error"
            result.error = f"Project not found: {project_id}"
            return result

        result = ExtractionRunResult(project_id, project["name"])
        start = time.time()

        try:
            _, pending = select_rated_outputs(project_id, self.mode)
            if not pending:
                result.status = "skipped"
                result.error = "No new ratings since the last extraction"
                return result

            extraction = await run_extraction(project_id, mode=self.mode)
            result.analyzed_outputs = extraction.analyzed_outputs
            result.extraction_id = extraction.extraction["id"]
            result.success_rate = extraction.metric["success_rate"]
            result.confidence_score = extraction.extraction["confidence_score"]
            result.status = "completed"

        except Exception as e:
            result.status = "error"
            result.error = str(e)
            logger.error(f"Extraction failed for project {project_id}: {e}", exc_info=True)

        finally:
            result.duration_ms = int((time.time() - start) * 1000)
            result.completed_at = datetime.now(timezone.utc).isoformat()

        return result

    async def extract_all(self) -> List[ExtractionRunResult]:
        """
        Run extraction for every project.

        Returns:
            List of ExtractionRunResult, one per project
        """
        projects = storage.list_projects()
        if not projects:
            logger.info("No projects to extract")
            return []

        logger.info(f"Starting extraction for {len(projects)} projects")
        results = []

        for project in projects:
            result = await self.extract_project(project["id"])
            results.append(result)
            logger.info(
                f"  [{result.status}] {result.project_name}: analyzed={result.analyzed_outputs}"
            )

        succeeded = sum(1 for r in results if r.status == "completed")
        failed = sum(1 for r in results if r.status == "error")
        logger.info(
            f"Extraction complete: {succeeded} succeeded, {failed} failed, "
            f"{len(results) - succeeded - failed} skipped"
        )

        return results

    async def run_daemon(self, interval_seconds: int = 3600):
        """
        Run as a background daemon that extracts on a schedule.

        Args:
            interval_seconds: How often to run extraction (default: hourly)
        """
        self._running = True
        logger.info(f"Extraction daemon started (interval: {interval_seconds}s)")

        while self._running:
            try:
                results = await self.extract_all()
                summary = {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "projects_processed": len(results),
                    "succeeded": sum(1 for r in results if r.status == "completed"),
                    "failed": sum(1 for r in results if r.status == "error"),
                    "total_analyzed": sum(r.analyzed_outputs for r in results),
                }
                logger.info(f"Daemon cycle complete: {json.dumps(summary)}")
            except Exception as e:
                logger.error(f"Daemon cycle failed: {e}", exc_info=True)

            await asyncio.sleep(interval_seconds)

    def stop(self):
        """Stop the daemon loop."""
        self._running = False
        logger.info("Extraction daemon stopping")


# ─── CLI Entry Point ──────────────────────────────────────────────────────────


async def _main():
    import argparse

    parser = argparse.ArgumentParser(
        description="Tellah - Periodic Pattern Extraction Worker"
    )
    parser.add_argument("--once", action="store_true", help="Run once and exit")
    parser.add_argument("--project-id", type=int, help="Extract for a specific project ID")
    parser.add_argument(
        "--interval", type=int, default=3600, help="Daemon interval in seconds"
    )
    parser.add_argument(
        "--full", action="store_true", help="Re-analyze all ratings, not just new ones"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    storage.init_db()
    worker = ExtractionWorker(mode=FULL if args.full else INCREMENTAL)

    if args.project_id is not None:
        result = await worker.extract_project(args.project_id)
        print(json.dumps(result.to_dict(), indent=2))
    elif args.once:
        results = await worker.extract_all()
        for r in results:
            status_icon = {"completed": "✅", "error": "❌", "skipped": "⏭️"}.get(
                r.status, "❓"
            )
            print(f"  {status_icon} {r.project_name}: {r.analyzed_outputs} rated outputs analyzed")
    else:
        await worker.run_daemon(interval_seconds=args.interval)


def main():
    asyncio.run(_main())


if __name__ == "__main__":
    main()
