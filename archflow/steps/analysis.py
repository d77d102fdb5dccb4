"""Analysis step: one structured read of the uploaded massing model."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..services.base import GenerationGateway
from ..types import AnalysisResult
from ..utils.prompts import load_prompt
from .base import BaseStep, StepJob

logger = logging.getLogger(__name__)

ANALYSIS_ERROR_MESSAGE = "Failed to analyze image structure. Please try again."


class AnalysisStatus(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AnalysisView:
    status: AnalysisStatus
    analysis: Optional[AnalysisResult]
    error: Optional[str]
    can_proceed: bool


class AnalysisStep(BaseStep):
    """Issues exactly one analysis request per activation, never retried."""

    def __init__(
        self,
        run_id: str,
        logger,
        image: bytes,
        gateway: GenerationGateway,
        on_complete: Callable[[AnalysisResult], None],
    ) -> None:
        super().__init__(name="Analysis", run_id=run_id, logger=logger)
        self._image = image
        self._gateway = gateway
        self._on_complete = on_complete
        self._job = StepJob()
        self.status = AnalysisStatus.LOADING
        self.analysis: Optional[AnalysisResult] = None
        self.error: Optional[str] = None

    def start(self) -> asyncio.Task:
        """Launch the request; repeated calls return the same task."""
        return self._job.schedule(self._analyze)

    async def _analyze(self) -> None:
        self.log_prompt(load_prompt("analyze_massing"))
        try:
            result = await self._gateway.analyze(self._image)
        except Exception as exc:
            logger.error("Massing analysis failed: %s", exc)
            self.error = ANALYSIS_ERROR_MESSAGE
            self.status = AnalysisStatus.ERROR
            self.log_response({"error": str(exc)})
            return

        self.analysis = result
        self.status = AnalysisStatus.SUCCESS
        self.log_response(result.to_dict())

    def proceed(self) -> bool:
        """User confirmation; hands the analysis to the workflow."""
        if self.status is not AnalysisStatus.SUCCESS or self.analysis is None:
            return False
        self._on_complete(self.analysis)
        return True

    def view(self) -> AnalysisView:
        return AnalysisView(
            status=self.status,
            analysis=self.analysis,
            error=self.error,
            can_proceed=self.status is AnalysisStatus.SUCCESS,
        )
