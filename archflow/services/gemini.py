"""Gemini / Veo client behind every generation step."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, List, Optional

import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from PIL import Image, ImageDraw, UnidentifiedImageError

from ..errors import CredentialError, GatewayError, VideoTimeoutError
from ..types import AnalysisResult, StyleConfig, VideoConfig, VisualProposal, WorkflowConfig
from ..utils.files import atomic_write, ensure_dir, sha256_hex
from ..utils.prompts import load_prompt

logger = logging.getLogger(__name__)

PROPOSAL_COUNT = 3
MASSING_MIME_TYPE = "image/png"

_ANALYSIS_SCHEMA = genai_types.Schema(
    type=genai_types.Type.OBJECT,
    properties={
        "typology": genai_types.Schema(type=genai_types.Type.STRING),
        "geometry": genai_types.Schema(type=genai_types.Type.STRING),
        "structural_logic": genai_types.Schema(type=genai_types.Type.STRING),
        "missing_elements": genai_types.Schema(
            type=genai_types.Type.ARRAY,
            items=genai_types.Schema(type=genai_types.Type.STRING),
        ),
    },
)

_PROPOSALS_SCHEMA = genai_types.Schema(
    type=genai_types.Type.ARRAY,
    items=genai_types.Schema(
        type=genai_types.Type.OBJECT,
        properties={
            "id": genai_types.Schema(type=genai_types.Type.STRING),
            "title": genai_types.Schema(type=genai_types.Type.STRING),
            "description": genai_types.Schema(type=genai_types.Type.STRING),
            "material_palette": genai_types.Schema(type=genai_types.Type.STRING),
            "lighting": genai_types.Schema(type=genai_types.Type.STRING),
        },
    ),
)


class GeminiGateway:
    """Talks to Gemini for analysis, proposals and stills, and to Veo for clips.

    When ``use_mock`` is True every call returns a deterministic local stand-in so
    the workflow stays runnable and testable without network access.
    """

    def __init__(
        self,
        assets_dir: str | Path = "assets",
        api_key: Optional[str] = None,
        analysis_model: str = "gemini-3-flash-preview",
        image_model: str = "gemini-3-pro-image-preview",
        video_model: str = "veo-3.1-generate-preview",
        use_mock: bool = True,
        timeout: int = 120,
        poll_interval: float = 5.0,
        max_wait: float = 600.0,
        client: Any = None,
    ) -> None:
        self._assets_dir = ensure_dir(assets_dir)
        self._api_key = api_key
        self._analysis_model = analysis_model
        self._image_model = image_model
        self._video_model = video_model
        self._use_mock = use_mock
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._max_wait = max_wait
        self._client = client

    def ensure_credential(self, prompt: Optional[Callable[[], Optional[str]]] = None) -> bool:
        """Return True once a usable key exists, asking ``prompt`` for one if needed."""
        if self._use_mock or self._api_key or self._client is not None:
            return True
        if prompt is None:
            return False
        supplied = (prompt() or "").strip()
        if not supplied:
            return False
        self._api_key = supplied
        return True

    async def analyze(self, image_bytes: bytes) -> AnalysisResult:
        """Decompose the massing model into typology, geometry and gaps."""
        if self._use_mock:
            return self._mock_analysis(image_bytes)

        response = await self._generate_content(
            model=self._analysis_model,
            contents=[
                genai_types.Part.from_bytes(data=image_bytes, mime_type=MASSING_MIME_TYPE),
                load_prompt("analyze_massing"),
            ],
            config=genai_types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=_ANALYSIS_SCHEMA,
            ),
        )
        payload = self._parse_json(getattr(response, "text", None), "Failed to analyze image")
        try:
            return AnalysisResult.from_dict(payload)
        except ValueError as exc:
            raise GatewayError(f"Malformed analysis response: {payload}") from exc

    async def propose(self, analysis: AnalysisResult, style: StyleConfig) -> List[VisualProposal]:
        """Ask for a small set of candidate visual directions."""
        if self._use_mock:
            return self._mock_proposals(analysis, style)

        prompt = load_prompt(
            "propose_directions",
            {
                "analysis": json.dumps(analysis.to_dict()),
                "constraints": json.dumps(style.to_dict()),
                "proposal_count": PROPOSAL_COUNT,
            },
        )
        response = await self._generate_content(
            model=self._analysis_model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=_PROPOSALS_SCHEMA,
            ),
        )
        payload = self._parse_json(getattr(response, "text", None), "Failed to generate proposals")
        if not isinstance(payload, list):
            raise GatewayError("Proposal response should be a JSON array.")
        try:
            return [VisualProposal.from_dict(item) for item in payload]
        except ValueError as exc:
            raise GatewayError(f"Malformed proposal response: {payload}") from exc

    async def render_image(
        self,
        massing_bytes: bytes,
        proposal: VisualProposal,
        config: WorkflowConfig,
        camera_angle: str,
    ) -> bytes:
        """Render one still of the massing from ``camera_angle``; returns PNG bytes."""
        if self._use_mock:
            return self._mock_image(proposal, camera_angle)

        prompt = self.compose_image_prompt(proposal, config, camera_angle)
        response = await self._generate_content(
            model=self._image_model,
            contents=[
                genai_types.Part.from_bytes(data=massing_bytes, mime_type=MASSING_MIME_TYPE),
                prompt,
            ],
        )
        for part in self._response_parts(response):
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                return inline.data
        raise GatewayError("No image generated")

    async def render_video(
        self,
        seed_bytes: bytes,
        video_config: VideoConfig,
        config: WorkflowConfig,
    ) -> str:
        """Submit a Veo job, poll it to completion and return the downloaded file path."""
        if self._use_mock:
            return self._mock_video(seed_bytes, video_config)

        client = self._resolve_client()
        prompt = self.compose_video_prompt(video_config, config)
        try:
            operation = await client.aio.models.generate_videos(
                model=self._video_model,
                prompt=prompt,
                image=genai_types.Image(image_bytes=seed_bytes, mime_type=MASSING_MIME_TYPE),
                config=genai_types.GenerateVideosConfig(
                    number_of_videos=1,
                    aspect_ratio="16:9",
                    resolution="720p",
                ),
            )
            operation = await self._wait_for_operation(client, operation)
        except genai_errors.APIError as exc:
            raise GatewayError(f"Video generation request failed: {exc}") from exc

        video_uri = self._extract_video_uri(operation)
        if not video_uri:
            raise GatewayError("Video generation failed")

        binary = await asyncio.to_thread(self._download_binary, video_uri)
        path = self._assets_dir / f"{sha256_hex(binary)}.mp4"
        atomic_write(path, binary)
        logger.info("Downloaded video (%d bytes) to %s", len(binary), path)
        return str(path)

    @staticmethod
    def compose_image_prompt(proposal: VisualProposal, config: WorkflowConfig, camera_angle: str) -> str:
        style = config.style
        return load_prompt(
            "render_image",
            {
                "realism_level": style.realism_level,
                "camera_angle": camera_angle,
                "title": proposal.title,
                "description": proposal.description,
                "material": style.material,
                "lighting": style.lighting,
                "environment": style.environment,
                "mood": style.mood,
                "resolution": config.image_generation.resolution,
                "post_processing": config.image_generation.post_processing,
            },
        )

    @staticmethod
    def compose_video_prompt(video_config: VideoConfig, config: WorkflowConfig) -> str:
        return load_prompt(
            "render_video",
            {
                "motion_style": video_config.motion_style,
                "camera_movements": video_config.camera_movements,
                "transition_style": video_config.transition_style,
                "frame_rate": video_config.frame_rate,
                "mood": config.style.mood,
                "lighting": config.style.lighting,
            },
        )

    async def _wait_for_operation(self, client: Any, operation: Any) -> Any:
        deadline = time.monotonic() + self._max_wait
        attempts = 0
        while not getattr(operation, "done", False):
            if time.monotonic() >= deadline:
                raise VideoTimeoutError(
                    f"Video job not finished after {self._max_wait:.0f}s ({attempts} polls)."
                )
            await asyncio.sleep(self._poll_interval)
            operation = await client.aio.operations.get(operation)
            attempts += 1
            logger.debug("Video job poll #%d done=%s", attempts, getattr(operation, "done", False))

        error = getattr(operation, "error", None)
        if error:
            raise GatewayError(f"Video job failed: {error}")
        return operation

    @staticmethod
    def _extract_video_uri(operation: Any) -> Optional[str]:
        response = getattr(operation, "response", None)
        videos = getattr(response, "generated_videos", None) or []
        if not videos:
            return None
        video = getattr(videos[0], "video", None)
        return getattr(video, "uri", None)

    def _download_binary(self, url: str) -> bytes:
        response = requests.get(url, params={"key": self._api_key}, timeout=self._timeout)
        response.raise_for_status()
        return response.content

    async def _generate_content(self, **kwargs: Any) -> Any:
        client = self._resolve_client()
        try:
            return await client.aio.models.generate_content(**kwargs)
        except genai_errors.APIError as exc:
            raise GatewayError(f"Gemini request failed: {exc}") from exc

    def _resolve_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise CredentialError("Gemini API key is missing; cannot call the generation service.")
        self._client = genai.Client(
            api_key=self._api_key,
            http_options=genai_types.HttpOptions(timeout=self._timeout * 1000),
        )
        return self._client

    @staticmethod
    def _response_parts(response: Any) -> list:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return []
        content = getattr(candidates[0], "content", None)
        return list(getattr(content, "parts", None) or [])

    @staticmethod
    def _parse_json(text: Optional[str], failure: str) -> Any:
        if not text:
            raise GatewayError(failure)
        cleaned = text.strip()
        # Models occasionally wrap JSON in a markdown fence despite the mime type.
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if len(lines) >= 3:
                cleaned = "\n".join(lines[1:-1]).strip()
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise GatewayError(f"{failure}: response is not valid JSON") from exc

    def _mock_analysis(self, image_bytes: bytes) -> AnalysisResult:
        try:
            with Image.open(BytesIO(image_bytes)) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError):
            width = height = 0
        if width and height and width >= height * 1.5:
            typology = "Low-rise horizontal pavilion"
        else:
            typology = "Mid-rise mixed-use block"
        return AnalysisResult(
            typology=typology,
            geometry=f"Stacked orthogonal volumes on a {width}x{height} source frame",
            structural_logic="Regular column grid with cantilevered upper floors",
            missing_elements=("facade articulation", "glazing", "landscape", "context"),
        )

    @staticmethod
    def _mock_proposals(analysis: AnalysisResult, style: StyleConfig) -> List[VisualProposal]:
        directions = [
            ("Monolithic Calm", "matte surfaces and deep reveals"),
            ("Transparent Lightness", "slender mullions and layered glass"),
            ("Weathered Context", "textured cladding that ages with the site"),
        ]
        return [
            VisualProposal(
                id=f"proposal-{idx + 1}",
                title=title,
                description=f"{analysis.typology} expressed with {detail}, {style.mood} mood.",
                material_palette=style.material,
                lighting=style.lighting,
            )
            for idx, (title, detail) in enumerate(directions)
        ]

    @staticmethod
    def _mock_image(proposal: VisualProposal, camera_angle: str) -> bytes:
        digest = sha256_hex(f"{proposal.id}|{camera_angle}".encode("utf-8"))
        color = tuple(int(digest[i : i + 2], 16) for i in (0, 2, 4))
        image = Image.new("RGB", (160, 90), color)
        ImageDraw.Draw(image).text((6, 6), camera_angle, fill=(255, 255, 255))
        output = BytesIO()
        image.save(output, format="PNG")
        return output.getvalue()

    def _mock_video(self, seed_bytes: bytes, video_config: VideoConfig) -> str:
        content = "\n".join(
            [
                "[Architectural Video]",
                f"Seed image sha256: {sha256_hex(seed_bytes)}",
                f"Motion: {video_config.motion_style}",
                f"Camera: {', '.join(video_config.camera_movements)}",
                f"Duration: {video_config.duration_seconds}s",
            ]
        )
        binary = content.encode("utf-8")
        path = self._assets_dir / f"{sha256_hex(binary)}.txt"
        atomic_write(path, binary)
        return str(path)
