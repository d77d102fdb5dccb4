"""Step controllers, one per wizard step."""

from .analysis import AnalysisStatus, AnalysisStep  # noqa: F401
from .image_gen import ImageGenStep, ImageSlotStatus  # noqa: F401
from .proposal import ProposalStatus, ProposalStep  # noqa: F401
from .upload import UploadStep  # noqa: F401
from .video_gen import VideoGenStep, VideoSlotStatus  # noqa: F401

__all__ = [
    "AnalysisStatus",
    "AnalysisStep",
    "ImageGenStep",
    "ImageSlotStatus",
    "ProposalStatus",
    "ProposalStep",
    "UploadStep",
    "VideoGenStep",
    "VideoSlotStatus",
]
