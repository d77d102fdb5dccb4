"""Image generation step: one concurrent render per configured camera angle."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..services.base import GenerationGateway
from ..types import GeneratedAsset, VisualProposal, WorkflowConfig
from ..utils.files import to_data_url
from ..utils.slots import SlotTable
from .base import BaseStep, StepJob

logger = logging.getLogger(__name__)


class ImageSlotStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ImageSlotView:
    index: int
    label: str
    status: ImageSlotStatus
    asset: Optional[GeneratedAsset]


@dataclass(frozen=True, slots=True)
class ImageGenView:
    total: int
    completed: int
    is_generating: bool
    slots: Tuple[ImageSlotView, ...]
    can_advance: bool


class ImageGenStep(BaseStep):
    """Fans out ``number_of_images`` renders and tolerates individual failures.

    Results are kept twice: ``arrivals`` in completion order, and an indexed slot
    table so each grid position shows the render requested for it.
    """

    def __init__(
        self,
        run_id: str,
        logger,
        base_image: bytes,
        config: WorkflowConfig,
        proposal: VisualProposal,
        gateway: GenerationGateway,
        on_complete: Callable[[Tuple[GeneratedAsset, ...]], None],
    ) -> None:
        super().__init__(name="ImageGen", run_id=run_id, logger=logger)
        self._base_image = base_image
        self._config = config
        self._proposal = proposal
        self._gateway = gateway
        self._on_complete = on_complete
        self._job = StepJob()
        self.total = config.image_generation.number_of_images
        self._results: SlotTable[GeneratedAsset] = SlotTable(self.total)
        self._failures: SlotTable[str] = SlotTable(self.total)
        self.arrivals: List[GeneratedAsset] = []
        self.completed = 0

    def start(self) -> asyncio.Task:
        return self._job.schedule(self._generate_all)

    async def _generate_all(self) -> None:
        angles = [self._config.image_generation.angle_for(idx) for idx in range(self.total)]
        self.log_prompt(
            json.dumps({"proposal": self._proposal.to_dict(), "camera_angles": angles}, indent=2)
        )
        await asyncio.gather(*(self._generate_slot(idx, angle) for idx, angle in enumerate(angles)))
        self.log_response(
            {
                "completed": self.completed,
                "assets": [asset.asset_id for asset in self.assets],
                "failed_slots": [idx for idx in range(self.total) if self._failures.is_written(idx)],
            }
        )

    async def _generate_slot(self, index: int, angle: str) -> None:
        try:
            png = await self._gateway.render_image(
                self._base_image, self._proposal, self._config, angle
            )
        except Exception as exc:
            logger.error("Failed to generate image %d (%s): %s", index, angle, exc)
            self._failures.set(index, str(exc))
        else:
            asset = GeneratedAsset(
                asset_id=f"img-{int(time.time() * 1000)}-{index}",
                kind="image",
                url=to_data_url(png, "image/png"),
                prompt_used=f"Angle: {angle}",
            )
            self._results.set(index, asset)
            self.arrivals.append(asset)
        # Failed slots still count, so the group always settles.
        self.completed += 1

    @property
    def assets(self) -> List[GeneratedAsset]:
        """Successful renders in request order."""
        return self._results.filled()

    @property
    def is_generating(self) -> bool:
        return self._job.started and not self._job.done

    @property
    def all_done(self) -> bool:
        return self.completed == self.total

    @property
    def can_advance(self) -> bool:
        # Weak gate: only checks that the group settled with something usable.
        return self.all_done and len(self.arrivals) > 0

    def slot_status(self, index: int) -> ImageSlotStatus:
        if self._results.is_written(index):
            return ImageSlotStatus.COMPLETE
        if self._failures.is_written(index):
            return ImageSlotStatus.FAILED
        return ImageSlotStatus.PENDING

    def approve(self) -> bool:
        """User approval; hands the renders to video generation."""
        if not self.can_advance:
            return False
        self._on_complete(tuple(self.assets))
        return True

    def view(self) -> ImageGenView:
        slots = tuple(
            ImageSlotView(
                index=idx,
                label=self._config.image_generation.angle_for(idx),
                status=self.slot_status(idx),
                asset=self._results[idx],
            )
            for idx in range(self.total)
        )
        return ImageGenView(
            total=self.total,
            completed=self.completed,
            is_generating=self.is_generating,
            slots=slots,
            can_advance=self.can_advance,
        )
