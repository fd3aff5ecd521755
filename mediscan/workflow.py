"""
Upload and analysis workflow.

One `UploadWorkflow` drives one file through

    idle -> file_selected -> uploading -> analyzing -> analyzed | failed

`start()` persists the image and the scan row (pending, then analyzing),
`finish()` waits out the simulated analysis while advancing a cosmetic
progress value and then writes the synthesized result. `finish()` runs as an
explicit task so it can be cancelled; a cancelled analysis never patches the
scan row.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from enum import StrEnum
from typing import Dict, Optional

from mediscan.analysis import Outcome, ScanTypeTable, scan_type_label, synthesize_result
from mediscan.data_access import DataService
from mediscan.db import ScanRecord
from mediscan.errors import MissingInformationError, ValidationError
from mediscan.types import ScanStatus
from mediscan.upload import SelectedFile, select_file

logger = logging.getLogger(__name__)

ANALYSIS_FAILED = "Analysis failed. Please try again."
ANALYSIS_CANCELLED = "Analysis cancelled"

PROGRESS_STEP_MIN = 5.0
PROGRESS_STEP_MAX = 20.0


class WorkflowState(StrEnum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    FAILED = "failed"


BUSY_STATES = frozenset({WorkflowState.UPLOADING, WorkflowState.ANALYZING})


class UploadWorkflow:
    def __init__(
        self,
        data: DataService,
        *,
        rng: random.Random | None = None,
        timing_rng: random.Random | None = None,
        min_delay: float = 3.0,
        max_delay: float = 5.0,
        tick_interval: float = 0.3,
        outcome_table: Dict[str, ScanTypeTable] | None = None,
    ):
        if min_delay > max_delay:
            raise ValueError("min_delay must not exceed max_delay")
        self.data = data
        # Outcome draws and timing draws use separate generators so a seeded
        # outcome does not depend on how many progress ticks happened.
        self.rng = rng or random.Random()
        self.timing_rng = timing_rng or random.Random()
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.tick_interval = tick_interval
        self.outcome_table = outcome_table

        self.state = WorkflowState.IDLE
        self.selected: Optional[SelectedFile] = None
        self.scan_type: Optional[str] = None
        self.scan: Optional[ScanRecord] = None
        self.result: Optional[Outcome] = None
        self.progress: float = 0.0
        self.error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        # Seen by the worker thread that writes the result.
        self._cancel_requested = threading.Event()

    @property
    def preview_url(self) -> Optional[str]:
        return self.selected.preview_url if self.selected else None

    def _log_prefix(self) -> str:
        return f"[{self.scan.id}]" if self.scan else "[new scan]"

    def select_file(
        self, filename: str, content_type: Optional[str], data: bytes
    ) -> SelectedFile:
        """
        Validate and keep a file. A rejected file leaves the workflow exactly
        as it was.
        """
        if self.state in BUSY_STATES:
            raise ValidationError("An analysis is already in progress.")
        selected = select_file(filename, content_type, data)
        self.selected = selected
        self.scan = None
        self.result = None
        self.progress = 0.0
        self.error = None
        self.state = WorkflowState.FILE_SELECTED
        return selected

    def _fail(self, reason: str) -> None:
        logger.warning("%s %s", self._log_prefix(), reason)
        self.state = WorkflowState.FAILED
        self.error = ANALYSIS_FAILED
        return None

    async def start(
        self, user_id: Optional[str], scan_type: Optional[str], name: Optional[str] = None
    ) -> Optional[ScanRecord]:
        """
        Upload the image and thumbnail, create the pending scan and mark it
        analyzing. Returns the scan, or None when any step failed (the row, if
        created, keeps the last status written).
        """
        if not self.selected or not scan_type or not user_id:
            raise MissingInformationError()
        if self.state in BUSY_STATES:
            raise ValidationError("An analysis is already in progress.")

        selected = self.selected
        self.scan_type = scan_type
        self.scan = None
        self.result = None
        self.progress = 0.0
        self.error = None
        self.state = WorkflowState.UPLOADING

        try:
            image_url, thumbnail_url = await asyncio.gather(
                asyncio.to_thread(
                    self.data.upload_image,
                    selected.filename,
                    selected.data,
                    selected.content_type,
                ),
                asyncio.to_thread(
                    self.data.upload_thumbnail, selected.filename, selected.data
                ),
            )

            label = scan_type_label(scan_type, self.outcome_table)
            scan = await asyncio.to_thread(
                self.data.create_scan,
                {
                    "user_id": user_id,
                    "name": name or f"{label} - {selected.filename}",
                    "type": label,
                    "file_name": selected.filename,
                    "file_size": selected.size,
                    "status": ScanStatus.PENDING,
                    "image_url": image_url,
                    "thumbnail_url": thumbnail_url,
                    "metadata": {
                        "scan_type": scan_type,
                        "content_type": selected.content_type,
                    },
                },
            )
            if scan is None:
                return self._fail("Scan record could not be created")
            self.scan = scan
            logger.info("%s Scan created for user %s", self._log_prefix(), user_id)

            updated = await asyncio.to_thread(
                self.data.update_scan, scan.id, {"status": ScanStatus.ANALYZING}
            )
            if updated is None:
                return self._fail("Scan could not be marked analyzing")
            self.scan = updated
        except asyncio.CancelledError:
            self.state = WorkflowState.FAILED
            self.error = ANALYSIS_CANCELLED
            raise
        except Exception:
            logger.exception("%s Upload step raised", self._log_prefix())
            return self._fail("Upload step failed")

        self.state = WorkflowState.ANALYZING
        return self.scan

    async def _tick_progress(self) -> None:
        while self.progress < 100:
            await asyncio.sleep(self.tick_interval)
            step = self.timing_rng.uniform(PROGRESS_STEP_MIN, PROGRESS_STEP_MAX)
            self.progress = min(100.0, self.progress + step)

    def _write_result(self, scan_id: str, updates: dict) -> Optional[ScanRecord]:
        # Cancelling the task does not stop a thread that is already running.
        if self._cancel_requested.is_set():
            logger.info("[%s] Result dropped, analysis was cancelled", scan_id)
            return None
        return self.data.update_scan(scan_id, updates)

    async def finish(self) -> Optional[ScanRecord]:
        """
        Wait out the simulated analysis, then write the synthesized result and
        mark the scan analyzed. Returns the updated scan or None on failure.
        """
        if self.state != WorkflowState.ANALYZING or self.scan is None:
            raise ValidationError("No analysis in progress.")
        scan_id = self.scan.id
        ticker = asyncio.create_task(self._tick_progress())
        try:
            await asyncio.sleep(self.timing_rng.uniform(self.min_delay, self.max_delay))
            outcome = synthesize_result(self.scan_type, self.rng, self.outcome_table)
            updates = {"status": ScanStatus.ANALYZED, **outcome.as_updates()}
            updated = await asyncio.to_thread(self._write_result, scan_id, updates)
        except asyncio.CancelledError:
            self.state = WorkflowState.FAILED
            self.error = ANALYSIS_CANCELLED
            logger.info("[%s] Analysis cancelled", scan_id)
            raise
        except Exception:
            logger.exception("[%s] Analysis step raised", scan_id)
            return self._fail("Analysis step failed")
        finally:
            ticker.cancel()

        if updated is None:
            return self._fail("Scan could not be marked analyzed")
        self.scan = updated
        self.result = outcome
        self.progress = 100.0
        self.state = WorkflowState.ANALYZED
        logger.info("[%s] Analysis complete: %s", scan_id, outcome.diagnosis)
        return updated

    async def analyze(
        self, user_id: Optional[str], scan_type: Optional[str], name: Optional[str] = None
    ) -> Optional[ScanRecord]:
        scan = await self.start(user_id, scan_type, name)
        if scan is None:
            return None
        return await self.run()

    def launch(self) -> asyncio.Task:
        """Schedule `finish()` as a cancellable task on the running loop."""
        if self._task and not self._task.done():
            raise ValidationError("An analysis is already in progress.")
        self._cancel_requested.clear()
        self._task = asyncio.create_task(self.finish())
        return self._task

    async def run(self) -> Optional[ScanRecord]:
        return await self.launch()

    def cancel(self) -> bool:
        """Cancel a running analysis. Returns False when nothing was running."""
        if self._task is None or self._task.done():
            return False
        self._cancel_requested.set()
        self._task.cancel()
        return True


class AnalysisRegistry:
    """Running analyses keyed by scan id, so a delete can stop its timer."""

    def __init__(self):
        self._running: Dict[str, UploadWorkflow] = {}

    def __len__(self) -> int:
        return len(self._running)

    def launch(self, workflow: UploadWorkflow) -> asyncio.Task:
        if workflow.scan is None:
            raise ValidationError("Workflow has no scan to analyze.")
        scan_id = workflow.scan.id
        task = workflow.launch()
        self._running[scan_id] = workflow
        task.add_done_callback(lambda t: self._finished(scan_id, t))
        return task

    def _finished(self, scan_id: str, task: asyncio.Task) -> None:
        self._running.pop(scan_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[%s] Analysis task crashed: %s", scan_id, exc)

    def get(self, scan_id: str) -> Optional[UploadWorkflow]:
        return self._running.get(scan_id)

    def cancel(self, scan_id: str) -> bool:
        workflow = self._running.get(scan_id)
        if workflow is None:
            return False
        return workflow.cancel()

    async def shutdown(self) -> None:
        tasks = []
        for workflow in list(self._running.values()):
            if workflow.cancel():
                tasks.append(workflow._task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
