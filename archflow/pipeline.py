"""Autopilot orchestration that walks one workflow through all five steps."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypedDict

from langgraph.graph import END, START, StateGraph

from .config import AppConfig
from .services.base import GenerationGateway
from .services.gemini import GeminiGateway
from .steps.analysis import AnalysisStep
from .steps.image_gen import ImageGenStep
from .steps.proposal import ProposalStatus, ProposalStep
from .steps.upload import UploadStep
from .steps.video_gen import VideoGenStep
from .types import VisualProposal, WorkflowStep
from .utils.run_logger import RunLogger
from .workflow import Workflow

logger = logging.getLogger(__name__)

ProposalChooser = Callable[[Sequence[VisualProposal]], VisualProposal]


class AutopilotState(TypedDict, total=False):
    workflow: Workflow
    halted_at: Optional[WorkflowStep]
    reason: Optional[str]


@dataclass(slots=True)
class AutopilotResult:
    """Outcome of an autopilot run."""

    workflow: Workflow
    halted_at: Optional[WorkflowStep] = None
    reason: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.halted_at is None and self.workflow.step is WorkflowStep.VIDEO_GEN


def first_proposal(proposals: Sequence[VisualProposal]) -> VisualProposal:
    return proposals[0]


class ArchFlowAgent:
    """High-level facade exposing the end-to-end render flow."""

    def __init__(
        self,
        config: AppConfig | None = None,
        gateway: GenerationGateway | None = None,
    ) -> None:
        self.config = config or AppConfig.from_env()
        self.logger = RunLogger(base_dir=self.config.runs_dir)
        self.gateway = gateway or GeminiGateway(
            assets_dir=self.config.assets_dir,
            api_key=self.config.gemini_api_key,
            analysis_model=self.config.analysis_model,
            image_model=self.config.image_model,
            video_model=self.config.video_model,
            use_mock=self.config.enable_mock_generation,
            timeout=self.config.request_timeout_sec,
            poll_interval=self.config.video_poll_interval_sec,
            max_wait=self.config.video_max_wait_sec,
        )

    def new_workflow(self, config_text: Optional[str] = None) -> Workflow:
        return Workflow(gateway=self.gateway, run_logger=self.logger, config_text=config_text)

    async def run(
        self,
        *,
        image_path: str | Path,
        config_text: Optional[str] = None,
        choose_proposal: Optional[ProposalChooser] = None,
    ) -> AutopilotResult:
        """Drive a fresh workflow, confirming every manual gate automatically."""
        workflow = self.new_workflow(config_text)
        graph = self._build_graph(
            image_path=image_path,
            choose_proposal=choose_proposal or first_proposal,
        )
        final = await graph.compile().ainvoke({"workflow": workflow})
        return AutopilotResult(
            workflow=final["workflow"],
            halted_at=final.get("halted_at"),
            reason=final.get("reason"),
        )

    def _build_graph(self, *, image_path: str | Path, choose_proposal: ProposalChooser) -> StateGraph:
        """Construct a LangGraph graph with one node per wizard step."""
        handlers: List[tuple[WorkflowStep, Callable[[Workflow], Awaitable[Optional[str]]]]] = [
            (WorkflowStep.UPLOAD, lambda wf: self._upload(wf, image_path)),
            (WorkflowStep.ANALYSIS, self._analysis),
            (WorkflowStep.PROPOSAL, lambda wf: self._proposal(wf, choose_proposal)),
            (WorkflowStep.IMAGE_GEN, self._image_gen),
            (WorkflowStep.VIDEO_GEN, self._video_gen),
        ]

        graph = StateGraph(AutopilotState)
        names = [step.value for step, _ in handlers]
        for step, handler in handlers:
            graph.add_node(step.value, self._node(step, handler))

        graph.add_edge(START, names[0])
        for previous, current in zip(names, names[1:]):
            graph.add_conditional_edges(previous, self._route(current), [current, END])
        graph.add_edge(names[-1], END)
        return graph

    def _node(
        self,
        step: WorkflowStep,
        handler: Callable[[Workflow], Awaitable[Optional[str]]],
    ) -> Callable[[AutopilotState], Awaitable[Dict[str, Any]]]:
        async def invoke(state: AutopilotState) -> Dict[str, Any]:
            workflow = state["workflow"]
            logger.info("[%s] >> %s", workflow.run_id, step.value)
            started = time.perf_counter()
            reason = await handler(workflow)
            elapsed = time.perf_counter() - started
            if reason is not None:
                logger.warning("[%s] halted at %s: %s", workflow.run_id, step.value, reason)
                return {"workflow": workflow, "halted_at": step, "reason": reason}
            logger.info("[%s] << %s [%.2fs]", workflow.run_id, step.value, elapsed)
            return {"workflow": workflow}

        return invoke

    @staticmethod
    def _route(next_node: str) -> Callable[[AutopilotState], str]:
        def route(state: AutopilotState) -> str:
            return END if state.get("halted_at") is not None else next_node

        return route

    async def _upload(self, workflow: Workflow, image_path: str | Path) -> Optional[str]:
        controller = workflow.active_controller()
        if not isinstance(controller, UploadStep):
            return "workflow is not at the upload step"
        controller.load_image(Path(image_path))
        if not controller.submit():
            return controller.notification or "upload was not accepted"
        return None

    async def _analysis(self, workflow: Workflow) -> Optional[str]:
        controller = workflow.active_controller()
        if not isinstance(controller, AnalysisStep):
            return "analysis prerequisites missing"
        await controller.start()
        if not controller.proceed():
            return controller.error or "analysis did not succeed"
        return None

    async def _proposal(self, workflow: Workflow, choose: ProposalChooser) -> Optional[str]:
        controller = workflow.active_controller()
        if not isinstance(controller, ProposalStep):
            return "proposal prerequisites missing"
        await controller.start()
        if controller.status is not ProposalStatus.READY or not controller.proposals:
            return controller.last_error or "no proposals returned"
        chosen = choose(controller.proposals)
        if not controller.select(chosen.id) or not controller.confirm():
            return f"proposal {chosen.id!r} could not be selected"
        return None

    async def _image_gen(self, workflow: Workflow) -> Optional[str]:
        controller = workflow.active_controller()
        if not isinstance(controller, ImageGenStep):
            return "image generation prerequisites missing"
        await controller.start()
        if not controller.approve():
            return f"{len(controller.arrivals)} of {controller.total} images generated"
        return None

    async def _video_gen(self, workflow: Workflow) -> Optional[str]:
        controller = workflow.active_controller()
        if not isinstance(controller, VideoGenStep):
            return "video generation prerequisites missing"
        await controller.start()
        return None
