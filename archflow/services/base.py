"""Service abstractions for the remote generation backend."""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol

from ..types import AnalysisResult, StyleConfig, VideoConfig, VisualProposal, WorkflowConfig


class GenerationGateway(Protocol):
    """Everything the step controllers need from the generative service."""

    def ensure_credential(self, prompt: Optional[Callable[[], Optional[str]]] = None) -> bool:
        ...

    async def analyze(self, image_bytes: bytes) -> AnalysisResult:
        ...

    async def propose(self, analysis: AnalysisResult, style: StyleConfig) -> List[VisualProposal]:
        ...

    async def render_image(
        self,
        massing_bytes: bytes,
        proposal: VisualProposal,
        config: WorkflowConfig,
        camera_angle: str,
    ) -> bytes:
        ...

    async def render_video(
        self,
        seed_bytes: bytes,
        video_config: VideoConfig,
        config: WorkflowConfig,
    ) -> str:
        ...
