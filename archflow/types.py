"""Core data models used across the ArchFlow workflow."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ConfigError

DEFAULT_CAMERA_ANGLE = "dynamic perspective"


class WorkflowStep(str, Enum):
    """The five wizard steps, in the only order they may be visited."""

    UPLOAD = "UPLOAD"
    ANALYSIS = "ANALYSIS"
    PROPOSAL = "PROPOSAL"
    IMAGE_GEN = "IMAGE_GEN"
    VIDEO_GEN = "VIDEO_GEN"

    @property
    def position(self) -> int:
        return list(WorkflowStep).index(self)


def _section(data: Mapping[str, Any], key: str, where: str) -> Mapping[str, Any]:
    value = data.get(key)
    if not isinstance(value, Mapping):
        raise ConfigError(f"{where}{key} must be an object")
    return value


def _string(data: Mapping[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ConfigError(f"{where}{key} must be a string")
    return value


def _count(data: Mapping[str, Any], key: str, where: str) -> int:
    value = data.get(key)
    # JSON has no integer type of its own; 4.0 is a valid count.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    # bool is an int subclass; "true" is never a valid count.
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{where}{key} must be a non-negative integer")
    return value


def _number(data: Mapping[str, Any], key: str, where: str) -> float | int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}{key} must be a number")
    return value


def _strings(data: Mapping[str, Any], key: str, where: str) -> Tuple[str, ...]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{where}{key} must be a list of strings")
    return tuple(value)


_STYLE_KEYS = ("material", "mood", "lighting", "realism_level", "environment")
_IMAGE_KEYS = ("number_of_images", "camera_angles", "resolution", "post_processing")
_VIDEO_KEYS = ("duration_seconds", "motion_style", "camera_movements", "transition_style", "frame_rate")
_VIDEO_GENERATION_KEYS = ("number_of_videos", "videos")
_WORKFLOW_KEYS = ("style", "image_generation", "video_generation")


def _extras(data: Mapping[str, Any], known: Tuple[str, ...]) -> Dict[str, Any]:
    """Return the keys the parser does not model, so they survive a round trip."""
    return {key: copy.deepcopy(value) for key, value in data.items() if key not in known}


@dataclass(frozen=True, slots=True)
class StyleConfig:
    """Look and feel constraints shared by every render."""

    material: str
    mood: str
    lighting: str
    realism_level: str
    environment: str
    extras: Dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StyleConfig":
        where = "style."
        return cls(
            material=_string(data, "material", where),
            mood=_string(data, "mood", where),
            lighting=_string(data, "lighting", where),
            realism_level=_string(data, "realism_level", where),
            environment=_string(data, "environment", where),
            extras=_extras(data, _STYLE_KEYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "material": self.material,
            "mood": self.mood,
            "lighting": self.lighting,
            "realism_level": self.realism_level,
            "environment": self.environment,
        }
        data.update(copy.deepcopy(self.extras))
        return data


@dataclass(frozen=True, slots=True)
class ImageGenerationConfig:
    """How many stills to render and from which camera positions."""

    number_of_images: int
    camera_angles: Tuple[str, ...]
    resolution: str
    post_processing: str
    extras: Dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImageGenerationConfig":
        where = "image_generation."
        return cls(
            number_of_images=_count(data, "number_of_images", where),
            camera_angles=_strings(data, "camera_angles", where),
            resolution=_string(data, "resolution", where),
            post_processing=_string(data, "post_processing", where),
            extras=_extras(data, _IMAGE_KEYS),
        )

    def angle_for(self, index: int) -> str:
        """Return the camera angle for slot ``index`` with the generic fallback."""
        if 0 <= index < len(self.camera_angles) and self.camera_angles[index]:
            return self.camera_angles[index]
        return DEFAULT_CAMERA_ANGLE

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "number_of_images": self.number_of_images,
            "camera_angles": list(self.camera_angles),
            "resolution": self.resolution,
            "post_processing": self.post_processing,
        }
        data.update(copy.deepcopy(self.extras))
        return data


@dataclass(frozen=True, slots=True)
class VideoConfig:
    """Motion and camera parameters for a single clip."""

    duration_seconds: float | int
    motion_style: str
    camera_movements: Tuple[str, ...]
    transition_style: str
    frame_rate: str
    extras: Dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> "VideoConfig":
        where = f"video_generation.videos[{index}]."
        return cls(
            duration_seconds=_number(data, "duration_seconds", where),
            motion_style=_string(data, "motion_style", where),
            camera_movements=_strings(data, "camera_movements", where),
            transition_style=_string(data, "transition_style", where),
            frame_rate=_string(data, "frame_rate", where),
            extras=_extras(data, _VIDEO_KEYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "duration_seconds": self.duration_seconds,
            "motion_style": self.motion_style,
            "camera_movements": list(self.camera_movements),
            "transition_style": self.transition_style,
            "frame_rate": self.frame_rate,
        }
        data.update(copy.deepcopy(self.extras))
        return data


@dataclass(frozen=True, slots=True)
class VideoGenerationConfig:
    """The list of clips to animate from the chosen still."""

    number_of_videos: int
    videos: Tuple[VideoConfig, ...]
    extras: Dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VideoGenerationConfig":
        where = "video_generation."
        raw_videos = data.get("videos")
        if not isinstance(raw_videos, list):
            raise ConfigError(f"{where}videos must be a list")
        videos = []
        for idx, item in enumerate(raw_videos):
            if not isinstance(item, Mapping):
                raise ConfigError(f"{where}videos[{idx}] must be an object")
            videos.append(VideoConfig.from_dict(item, idx))
        return cls(
            number_of_videos=_count(data, "number_of_videos", where),
            videos=tuple(videos),
            extras=_extras(data, _VIDEO_GENERATION_KEYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "number_of_videos": self.number_of_videos,
            "videos": [video.to_dict() for video in self.videos],
        }
        data.update(copy.deepcopy(self.extras))
        return data


@dataclass(frozen=True, slots=True)
class WorkflowConfig:
    """User supplied run configuration, read-only once the run starts."""

    style: StyleConfig
    image_generation: ImageGenerationConfig
    video_generation: VideoGenerationConfig
    extras: Dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, data: Any) -> "WorkflowConfig":
        if not isinstance(data, Mapping):
            raise ConfigError("configuration root must be an object")
        return cls(
            style=StyleConfig.from_dict(_section(data, "style", "")),
            image_generation=ImageGenerationConfig.from_dict(_section(data, "image_generation", "")),
            video_generation=VideoGenerationConfig.from_dict(_section(data, "video_generation", "")),
            extras=_extras(data, _WORKFLOW_KEYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "style": self.style.to_dict(),
            "image_generation": self.image_generation.to_dict(),
            "video_generation": self.video_generation.to_dict(),
        }
        data.update(copy.deepcopy(self.extras))
        return data


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Structured decomposition of the uploaded massing model."""

    typology: str
    geometry: str
    structural_logic: str
    missing_elements: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "AnalysisResult":
        if not isinstance(data, Mapping):
            raise ValueError("analysis payload must be an object")
        missing = data.get("missing_elements") or []
        if not isinstance(missing, list):
            raise ValueError("missing_elements must be a list")
        return cls(
            typology=str(data.get("typology") or ""),
            geometry=str(data.get("geometry") or ""),
            structural_logic=str(data.get("structural_logic") or ""),
            missing_elements=tuple(str(item) for item in missing),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "typology": self.typology,
            "geometry": self.geometry,
            "structural_logic": self.structural_logic,
            "missing_elements": list(self.missing_elements),
        }


@dataclass(frozen=True, slots=True)
class VisualProposal:
    """One candidate visual direction offered to the user."""

    id: str
    title: str
    description: str
    material_palette: str
    lighting: str

    @classmethod
    def from_dict(cls, data: Any) -> "VisualProposal":
        if not isinstance(data, Mapping):
            raise ValueError("proposal payload must be an object")
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            material_palette=str(data.get("material_palette") or ""),
            lighting=str(data.get("lighting") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "material_palette": self.material_palette,
            "lighting": self.lighting,
        }


@dataclass(frozen=True, slots=True)
class GeneratedAsset:
    """An image or video produced by the generation steps."""

    asset_id: str
    kind: str
    url: str
    prompt_used: Optional[str] = None
    local_path: Optional[str] = None


@dataclass(frozen=True, slots=True)
class WorkflowState:
    """Snapshot of the wizard; replaced wholesale on every transition."""

    step: WorkflowStep = WorkflowStep.UPLOAD
    config: Optional[WorkflowConfig] = None
    base_image: Optional[bytes] = None
    analysis: Optional[AnalysisResult] = None
    selected_proposal: Optional[VisualProposal] = None
    generated_images: Tuple[GeneratedAsset, ...] = field(default_factory=tuple)


__all__: List[str] = [
    "DEFAULT_CAMERA_ANGLE",
    "AnalysisResult",
    "GeneratedAsset",
    "ImageGenerationConfig",
    "StyleConfig",
    "VideoConfig",
    "VideoGenerationConfig",
    "VisualProposal",
    "WorkflowConfig",
    "WorkflowState",
    "WorkflowStep",
]
