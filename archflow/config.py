"""Configuration containers for the ArchFlow workflow."""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from typing import Any, ClassVar, Dict

from .types import WorkflowConfig

# Template shown in the upload editor before the user changes anything.
DEFAULT_WORKFLOW_CONFIG: Dict[str, Any] = {
    "style": {
        "material": "exposed concrete and glass",
        "mood": "cinematic",
        "lighting": "golden hour",
        "realism_level": "photorealistic",
        "environment": "urban coastal",
    },
    "image_generation": {
        "number_of_images": 4,
        "camera_angles": ["wide", "medium", "close", "aerial"],
        "resolution": "high",
        "post_processing": "architectural render quality",
    },
    "video_generation": {
        "number_of_videos": 2,
        "videos": [
            {
                "duration_seconds": 12,
                "motion_style": "slow cinematic",
                "camera_movements": ["dolly forward", "pan"],
                "transition_style": "smooth",
                "frame_rate": "cinematic",
            },
            {
                "duration_seconds": 12,
                "motion_style": "dynamic cinematic",
                "camera_movements": ["orbit", "crane up"],
                "transition_style": "smooth",
                "frame_rate": "cinematic",
            },
        ],
    },
}


def default_workflow_config() -> WorkflowConfig:
    """Return the parsed default template."""
    return WorkflowConfig.from_dict(copy.deepcopy(DEFAULT_WORKFLOW_CONFIG))


def default_config_text() -> str:
    """Return the default template as the editor shows it."""
    return json.dumps(DEFAULT_WORKFLOW_CONFIG, indent=2)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class AppConfig:
    """Static configuration applied to every workflow run."""

    env_prefix: ClassVar[str] = "ARCHFLOW_"

    assets_dir: str = "assets"
    runs_dir: str = "runs"
    enable_mock_generation: bool = True
    gemini_api_key: str | None = None
    analysis_model: str = "gemini-3-flash-preview"
    image_model: str = "gemini-3-pro-image-preview"
    video_model: str = "veo-3.1-generate-preview"
    video_poll_interval_sec: float = 5.0
    video_max_wait_sec: float = 600.0
    request_timeout_sec: int = 120

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create a config object populated from environment variables."""
        prefix = cls.env_prefix
        return cls(
            assets_dir=os.getenv(f"{prefix}ASSETS_DIR", "assets"),
            runs_dir=os.getenv(f"{prefix}RUNS_DIR", "runs"),
            enable_mock_generation=_env_flag(f"{prefix}ENABLE_MOCKS", "true"),
            gemini_api_key=(
                os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY")
            ),
            analysis_model=os.getenv(f"{prefix}ANALYSIS_MODEL", "gemini-3-flash-preview"),
            image_model=os.getenv(f"{prefix}IMAGE_MODEL", "gemini-3-pro-image-preview"),
            video_model=os.getenv(f"{prefix}VIDEO_MODEL", "veo-3.1-generate-preview"),
            video_poll_interval_sec=float(os.getenv(f"{prefix}VIDEO_POLL_INTERVAL", "5")),
            video_max_wait_sec=float(os.getenv(f"{prefix}VIDEO_MAX_WAIT", "600")),
            request_timeout_sec=int(os.getenv(f"{prefix}REQUEST_TIMEOUT", "120")),
        )
