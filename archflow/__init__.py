"""ArchFlow package.

Turns an unfinished architectural massing model into rendered stills and
cinematic clips through a five-step guided workflow backed by Gemini and Veo.
"""

from .pipeline import ArchFlowAgent  # noqa: F401
from .workflow import Workflow  # noqa: F401

__all__ = ["ArchFlowAgent", "Workflow"]
