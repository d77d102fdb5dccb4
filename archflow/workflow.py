"""Workflow state container: owns the current step and every accumulated artifact."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import WorkflowError
from .services.base import GenerationGateway
from .steps.analysis import AnalysisStep
from .steps.base import StepController
from .steps.image_gen import ImageGenStep
from .steps.proposal import ProposalStep
from .steps.upload import UploadStep
from .steps.video_gen import VideoGenStep
from .types import (
    AnalysisResult,
    GeneratedAsset,
    VisualProposal,
    WorkflowConfig,
    WorkflowState,
    WorkflowStep,
)
from .utils.run_logger import RunLogger, elide_payloads

logger = logging.getLogger(__name__)


class Workflow:
    """Five-step wizard that only ever moves forward.

    Every advance swaps in a new immutable ``WorkflowState`` in one assignment, so
    a step is never visible without the artifact that justified reaching it.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        run_logger: RunLogger,
        run_id: Optional[str] = None,
        config_text: Optional[str] = None,
    ) -> None:
        self._gateway = gateway
        self._run_logger = run_logger
        self._config_text = config_text
        self.run_id = run_id or self._new_run_id()
        self._state = WorkflowState()
        self._controller: Optional[StepController] = None
        self._controller_step: Optional[WorkflowStep] = None
        self._factories: Dict[WorkflowStep, Callable[[WorkflowState], Optional[StepController]]] = {
            WorkflowStep.UPLOAD: self._upload_controller,
            WorkflowStep.ANALYSIS: self._analysis_controller,
            WorkflowStep.PROPOSAL: self._proposal_controller,
            WorkflowStep.IMAGE_GEN: self._image_controller,
            WorkflowStep.VIDEO_GEN: self._video_controller,
        }

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def step(self) -> WorkflowStep:
        return self._state.step

    def complete_upload(self, image: bytes, config: WorkflowConfig) -> None:
        self._advance(WorkflowStep.UPLOAD, WorkflowStep.ANALYSIS, base_image=image, config=config)

    def complete_analysis(self, result: AnalysisResult) -> None:
        self._advance(WorkflowStep.ANALYSIS, WorkflowStep.PROPOSAL, analysis=result)

    def select_proposal(self, proposal: VisualProposal) -> None:
        self._advance(WorkflowStep.PROPOSAL, WorkflowStep.IMAGE_GEN, selected_proposal=proposal)

    def complete_images(self, assets: Tuple[GeneratedAsset, ...]) -> None:
        self._advance(WorkflowStep.IMAGE_GEN, WorkflowStep.VIDEO_GEN, generated_images=tuple(assets))

    def reload(self) -> None:
        """Discard the whole run, like reloading the page."""
        logger.info("Reloading workflow; run %s abandoned at %s", self.run_id, self.step.value)
        self.run_id = self._new_run_id()
        self._state = WorkflowState()
        self._controller = None
        self._controller_step = None

    def active_controller(self) -> Optional[StepController]:
        """Return the controller for the current step, or None if its inputs are missing."""
        state = self._state
        if self._controller is not None and self._controller_step is state.step:
            return self._controller
        controller = self._factories[state.step](state)
        self._controller = controller
        self._controller_step = state.step if controller is not None else None
        return controller

    def render(self) -> Any:
        """Return the active controller's view model, or None."""
        controller = self.active_controller()
        return controller.view() if controller is not None else None

    def _advance(self, expected: WorkflowStep, target: WorkflowStep, **artifacts: Any) -> None:
        current = self._state
        if current.step is not expected:
            raise WorkflowError(
                f"cannot move to {target.value} from {current.step.value}; expected {expected.value}"
            )
        self._state = replace(current, step=target, **artifacts)
        self._trace(expected, target)

    def _upload_controller(self, state: WorkflowState) -> Optional[StepController]:
        return UploadStep(
            run_id=self.run_id,
            logger=self._run_logger,
            on_next=self.complete_upload,
            config_text=self._config_text,
        )

    def _analysis_controller(self, state: WorkflowState) -> Optional[StepController]:
        if state.base_image is None:
            return None
        return AnalysisStep(
            run_id=self.run_id,
            logger=self._run_logger,
            image=state.base_image,
            gateway=self._gateway,
            on_complete=self.complete_analysis,
        )

    def _proposal_controller(self, state: WorkflowState) -> Optional[StepController]:
        if state.analysis is None or state.config is None:
            return None
        return ProposalStep(
            run_id=self.run_id,
            logger=self._run_logger,
            analysis=state.analysis,
            config=state.config,
            gateway=self._gateway,
            on_selected=self.select_proposal,
        )

    def _image_controller(self, state: WorkflowState) -> Optional[StepController]:
        if state.base_image is None or state.selected_proposal is None or state.config is None:
            return None
        return ImageGenStep(
            run_id=self.run_id,
            logger=self._run_logger,
            base_image=state.base_image,
            config=state.config,
            proposal=state.selected_proposal,
            gateway=self._gateway,
            on_complete=self.complete_images,
        )

    def _video_controller(self, state: WorkflowState) -> Optional[StepController]:
        if not state.generated_images or state.config is None:
            return None
        return VideoGenStep(
            run_id=self.run_id,
            logger=self._run_logger,
            source_images=state.generated_images,
            config=state.config,
            gateway=self._gateway,
        )

    def _trace(self, source: WorkflowStep, target: WorkflowStep) -> None:
        """Log a compact view of the new state for each transition."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        snapshot = self._strip_empty(elide_payloads(asdict(self._state)))
        body = json.dumps(snapshot, ensure_ascii=False, indent=2, default=str)
        logger.debug("[%s] %s -> %s:\n%s", self.run_id, source.value, target.value, body)

    def _strip_empty(self, value: Any) -> Any:
        """Recursively remove empty containers for cleaner logging."""
        if isinstance(value, dict):
            return {k: self._strip_empty(v) for k, v in value.items() if not self._is_empty(v)}
        if isinstance(value, list):
            return [self._strip_empty(item) for item in value if not self._is_empty(item)]
        return value

    @staticmethod
    def _is_empty(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, (str, list, tuple, dict)) and len(value) == 0:
            return True
        return False

    @staticmethod
    def _new_run_id() -> str:
        """Return a simple unique run identifier."""
        return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
