"""Proposal step: fetch candidate visual directions and let the user pick one."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..services.base import GenerationGateway
from ..types import AnalysisResult, VisualProposal, WorkflowConfig
from .base import BaseStep, StepJob

logger = logging.getLogger(__name__)


class ProposalStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True, slots=True)
class ProposalView:
    status: ProposalStatus
    proposals: Tuple[VisualProposal, ...]
    selected_id: Optional[str]
    can_confirm: bool


class ProposalStep(BaseStep):
    """Fetches proposals once; a failed fetch is logged and leaves the step loading."""

    def __init__(
        self,
        run_id: str,
        logger,
        analysis: AnalysisResult,
        config: WorkflowConfig,
        gateway: GenerationGateway,
        on_selected: Callable[[VisualProposal], None],
    ) -> None:
        super().__init__(name="Proposal", run_id=run_id, logger=logger)
        self._analysis = analysis
        self._config = config
        self._gateway = gateway
        self._on_selected = on_selected
        self._job = StepJob()
        self.status = ProposalStatus.LOADING
        self.proposals: List[VisualProposal] = []
        self.selected_id: Optional[str] = None
        self.last_error: Optional[str] = None

    def start(self) -> asyncio.Task:
        return self._job.schedule(self._fetch)

    async def _fetch(self) -> None:
        self.log_prompt(
            json.dumps(
                {"analysis": self._analysis.to_dict(), "constraints": self._config.style.to_dict()},
                indent=2,
            )
        )
        try:
            results = await self._gateway.propose(self._analysis, self._config.style)
        except Exception as exc:
            # No recovery is offered to the user here; the step stays in loading.
            logger.error("Proposal request failed: %s", exc)
            self.last_error = str(exc)
            self.log_response({"error": str(exc)})
            return

        self.proposals = list(results)
        self.status = ProposalStatus.READY
        self.log_response({"proposals": [proposal.to_dict() for proposal in self.proposals]})

    def select(self, proposal_id: str) -> bool:
        """Mark one candidate as chosen; unknown ids are ignored."""
        if not any(proposal.id == proposal_id for proposal in self.proposals):
            return False
        self.selected_id = proposal_id
        return True

    @property
    def selected(self) -> Optional[VisualProposal]:
        return next((p for p in self.proposals if p.id == self.selected_id), None)

    def confirm(self) -> bool:
        """Hand the selected proposal to the workflow."""
        selected = self.selected
        if selected is None:
            return False
        self._on_selected(selected)
        return True

    def view(self) -> ProposalView:
        return ProposalView(
            status=self.status,
            proposals=tuple(self.proposals),
            selected_id=self.selected_id,
            can_confirm=self.selected is not None,
        )
