"""Video generation step: animate the first render once per configured clip."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..services.base import GenerationGateway
from ..types import GeneratedAsset, VideoConfig, WorkflowConfig
from ..utils.files import decode_payload
from ..utils.slots import SlotTable
from .base import BaseStep, StepJob

logger = logging.getLogger(__name__)


class VideoSlotStatus(str, Enum):
    INITIALIZING = "Initializing..."
    GENERATING = "Generating..."
    COMPLETE = "Complete"
    FAILED = "Failed"


_ALLOWED_TRANSITIONS = {
    VideoSlotStatus.INITIALIZING: {VideoSlotStatus.GENERATING},
    VideoSlotStatus.GENERATING: {VideoSlotStatus.COMPLETE, VideoSlotStatus.FAILED},
    VideoSlotStatus.COMPLETE: set(),
    VideoSlotStatus.FAILED: set(),
}


@dataclass(frozen=True, slots=True)
class VideoSlotView:
    index: int
    motion_style: str
    camera_movements: Tuple[str, ...]
    duration_seconds: float | int
    status: VideoSlotStatus
    asset: Optional[GeneratedAsset]
    poster: Optional[str]


class VideoGenStep(BaseStep):
    """Terminal step; every clip is tracked by its own slot index."""

    def __init__(
        self,
        run_id: str,
        logger,
        source_images: Sequence[GeneratedAsset],
        config: WorkflowConfig,
        gateway: GenerationGateway,
    ) -> None:
        super().__init__(name="VideoGen", run_id=run_id, logger=logger)
        self._source_images = tuple(source_images)
        self._config = config
        self._gateway = gateway
        self._job = StepJob()
        self.video_configs: Tuple[VideoConfig, ...] = config.video_generation.videos
        self.statuses: List[VideoSlotStatus] = [VideoSlotStatus.INITIALIZING] * len(self.video_configs)
        self._videos: SlotTable[GeneratedAsset] = SlotTable(len(self.video_configs))

        requested = config.video_generation.number_of_videos
        if requested != len(self.video_configs):
            logger.warning(
                "number_of_videos=%d but %d video configs supplied; following the list",
                requested,
                len(self.video_configs),
            )

    @property
    def seed_image(self) -> Optional[GeneratedAsset]:
        return self._source_images[0] if self._source_images else None

    def start(self) -> asyncio.Task:
        return self._job.schedule(self._generate_all)

    async def _generate_all(self) -> None:
        seed = self.seed_image
        if seed is None:
            logger.warning("No generated image available to seed video generation")
            return

        seed_bytes = decode_payload(seed.url)
        self.log_prompt(
            json.dumps(
                {
                    "seed_asset": seed.asset_id,
                    "videos": [video.to_dict() for video in self.video_configs],
                },
                indent=2,
            )
        )
        await asyncio.gather(
            *(
                self._generate_slot(idx, video, seed_bytes)
                for idx, video in enumerate(self.video_configs)
            )
        )
        self.log_response(
            {
                "statuses": [status.value for status in self.statuses],
                "videos": [video.url if video else None for video in self._videos],
            }
        )

    async def _generate_slot(self, index: int, video: VideoConfig, seed_bytes: bytes) -> None:
        self._transition(index, VideoSlotStatus.GENERATING)
        try:
            reference = await self._gateway.render_video(seed_bytes, video, self._config)
        except Exception as exc:
            logger.error("Video %d (%s) failed: %s", index, video.motion_style, exc)
            self._transition(index, VideoSlotStatus.FAILED)
            return

        self._videos.set(index, self._asset_for(index, video, reference))
        self._transition(index, VideoSlotStatus.COMPLETE)

    def _asset_for(self, index: int, video: VideoConfig, reference: str) -> GeneratedAsset:
        if reference.startswith(("http://", "https://", "file://")):
            url, local_path = reference, None
        else:
            url, local_path = Path(reference).resolve().as_uri(), reference
        return GeneratedAsset(
            asset_id=f"vid-{int(time.time() * 1000)}-{index}",
            kind="video",
            url=url,
            prompt_used=video.motion_style,
            local_path=local_path,
        )

    def _transition(self, index: int, status: VideoSlotStatus) -> None:
        current = self.statuses[index]
        if status not in _ALLOWED_TRANSITIONS[current]:
            raise RuntimeError(f"video slot {index} cannot move from {current.name} to {status.name}")
        self.statuses[index] = status

    @property
    def videos(self) -> List[Optional[GeneratedAsset]]:
        """Per-slot results; ``None`` where a clip failed or is still pending."""
        return list(self._videos)

    @property
    def settled(self) -> bool:
        return all(
            status in (VideoSlotStatus.COMPLETE, VideoSlotStatus.FAILED) for status in self.statuses
        )

    def view(self) -> Tuple[VideoSlotView, ...]:
        poster = self.seed_image.url if self.seed_image else None
        return tuple(
            VideoSlotView(
                index=idx,
                motion_style=video.motion_style,
                camera_movements=video.camera_movements,
                duration_seconds=video.duration_seconds,
                status=self.statuses[idx],
                asset=self._videos[idx] if self.statuses[idx] is VideoSlotStatus.COMPLETE else None,
                poster=poster,
            )
            for idx, video in enumerate(self.video_configs)
        )
