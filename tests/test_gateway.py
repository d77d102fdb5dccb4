"""Tests for the Gemini gateway in mock mode and against a fake SDK client."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

from archflow.config import default_workflow_config
from archflow.errors import CredentialError, GatewayError, VideoTimeoutError
from archflow.services.gemini import PROPOSAL_COUNT, GeminiGateway
from archflow.types import WorkflowConfig
from tests.fakes import SAMPLE_ANALYSIS, SAMPLE_PROPOSALS, png_bytes


class _FakeModels:
    def __init__(self, content_response=None, operation=None) -> None:
        self.content_response = content_response
        self.operation = operation
        self.content_calls = []
        self.video_calls = []

    async def generate_content(self, **kwargs):
        self.content_calls.append(kwargs)
        return self.content_response

    async def generate_videos(self, **kwargs):
        self.video_calls.append(kwargs)
        return self.operation


class _FakeOperations:
    """Reports the job as running for ``pending_polls`` polls, then done."""

    def __init__(self, pending_polls: int, final) -> None:
        self.pending_polls = pending_polls
        self.final = final
        self.polls = 0

    async def get(self, operation):
        self.polls += 1
        if self.pending_polls is not None and self.polls > self.pending_polls:
            return self.final
        return SimpleNamespace(done=False)


def _fake_client(models: _FakeModels, operations: _FakeOperations | None = None):
    return SimpleNamespace(aio=SimpleNamespace(models=models, operations=operations))


def _finished_operation(uri: str | None = "https://files.example.test/v1/video?alt=media"):
    videos = [SimpleNamespace(video=SimpleNamespace(uri=uri))] if uri else []
    return SimpleNamespace(done=True, error=None, response=SimpleNamespace(generated_videos=videos))


class _GatewayTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.assets_dir = Path(self._tmp.name) / "assets"
        self.config = default_workflow_config()

    def _live(self, client, **kwargs) -> GeminiGateway:
        kwargs.setdefault("poll_interval", 0)
        return GeminiGateway(assets_dir=self.assets_dir, use_mock=False, client=client, **kwargs)


class MockModeTest(_GatewayTestCase):
    """Mock mode keeps the workflow runnable offline."""

    async def test_mock_outputs(self) -> None:
        gateway = GeminiGateway(assets_dir=self.assets_dir, use_mock=True)
        analysis = await gateway.analyze(png_bytes(size=(300, 100)))
        self.assertEqual(analysis.typology, "Low-rise horizontal pavilion")
        self.assertTrue(analysis.missing_elements)

        proposals = await gateway.propose(analysis, self.config.style)
        self.assertEqual(len(proposals), PROPOSAL_COUNT)
        self.assertEqual(len({proposal.id for proposal in proposals}), PROPOSAL_COUNT)

        image = await gateway.render_image(b"massing", proposals[0], self.config, "wide")
        self.assertTrue(image.startswith(b"\x89PNG"))

        reference = await gateway.render_video(image, self.config.video_generation.videos[0], self.config)
        content = Path(reference).read_text(encoding="utf-8")
        self.assertIn("slow cinematic", content)

    def test_mock_mode_needs_no_credential(self) -> None:
        self.assertTrue(GeminiGateway(assets_dir=self.assets_dir, use_mock=True).ensure_credential())


class CredentialTest(_GatewayTestCase):
    """Covers the one-time key check."""

    def test_prompts_when_key_missing(self) -> None:
        gateway = GeminiGateway(assets_dir=self.assets_dir, use_mock=False)
        self.assertFalse(gateway.ensure_credential())
        self.assertFalse(gateway.ensure_credential(lambda: "  "))
        self.assertTrue(gateway.ensure_credential(lambda: "typed-key"))
        self.assertTrue(gateway.ensure_credential())

    async def test_live_call_without_key_fails(self) -> None:
        gateway = GeminiGateway(assets_dir=self.assets_dir, use_mock=False)
        with self.assertRaises(CredentialError):
            await gateway.analyze(b"massing")


class LiveContentTest(_GatewayTestCase):
    """Request shaping and response parsing for generate_content calls."""

    async def test_analyze_parses_json(self) -> None:
        models = _FakeModels(SimpleNamespace(text=json.dumps(SAMPLE_ANALYSIS.to_dict())))
        result = await self._live(_fake_client(models)).analyze(png_bytes())
        self.assertEqual(result, SAMPLE_ANALYSIS)
        call = models.content_calls[0]
        self.assertEqual(call["model"], "gemini-3-flash-preview")
        self.assertEqual(call["config"].response_mime_type, "application/json")

    async def test_analyze_accepts_fenced_json(self) -> None:
        text = "```json\n" + json.dumps(SAMPLE_ANALYSIS.to_dict()) + "\n```"
        models = _FakeModels(SimpleNamespace(text=text))
        result = await self._live(_fake_client(models)).analyze(png_bytes())
        self.assertEqual(result.typology, SAMPLE_ANALYSIS.typology)

    async def test_analyze_rejects_empty_and_invalid(self) -> None:
        for text in (None, "not json"):
            models = _FakeModels(SimpleNamespace(text=text))
            with self.assertRaises(GatewayError):
                await self._live(_fake_client(models)).analyze(png_bytes())

    async def test_propose_sends_style_constraints(self) -> None:
        payload = [proposal.to_dict() for proposal in SAMPLE_PROPOSALS]
        models = _FakeModels(SimpleNamespace(text=json.dumps(payload)))
        proposals = await self._live(_fake_client(models)).propose(SAMPLE_ANALYSIS, self.config.style)
        self.assertEqual(proposals, SAMPLE_PROPOSALS)
        prompt = models.content_calls[0]["contents"]
        self.assertIn(json.dumps(self.config.style.to_dict()), prompt)

    async def test_propose_forwards_unknown_style_keys(self) -> None:
        data = self.config.to_dict()
        data["style"]["facade_rhythm"] = "vertical fins"
        style = WorkflowConfig.from_dict(data).style
        payload = [proposal.to_dict() for proposal in SAMPLE_PROPOSALS]
        models = _FakeModels(SimpleNamespace(text=json.dumps(payload)))
        await self._live(_fake_client(models)).propose(SAMPLE_ANALYSIS, style)
        prompt = models.content_calls[0]["contents"]
        self.assertIn(json.dumps(data["style"]), prompt)

    async def test_propose_requires_array(self) -> None:
        models = _FakeModels(SimpleNamespace(text=json.dumps({"id": "p1"})))
        with self.assertRaises(GatewayError):
            await self._live(_fake_client(models)).propose(SAMPLE_ANALYSIS, self.config.style)

    async def test_render_image_returns_inline_bytes(self) -> None:
        parts = [SimpleNamespace(inline_data=None, text="here"), SimpleNamespace(inline_data=SimpleNamespace(data=b"img"))]
        response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])
        models = _FakeModels(response)
        image = await self._live(_fake_client(models)).render_image(b"massing", SAMPLE_PROPOSALS[0], self.config, "aerial")
        self.assertEqual(image, b"img")
        call = models.content_calls[0]
        self.assertEqual(call["model"], "gemini-3-pro-image-preview")
        self.assertIn("Camera Angle: aerial.", call["contents"][1])

    async def test_render_image_without_image_part(self) -> None:
        models = _FakeModels(SimpleNamespace(candidates=[]))
        with self.assertRaisesRegex(GatewayError, "No image generated"):
            await self._live(_fake_client(models)).render_image(b"m", SAMPLE_PROPOSALS[0], self.config, "wide")


class LiveVideoTest(_GatewayTestCase):
    """Job submission, bounded polling and download."""

    async def test_polls_until_done_then_downloads(self) -> None:
        operations = _FakeOperations(pending_polls=2, final=_finished_operation())
        models = _FakeModels(operation=SimpleNamespace(done=False))
        gateway = self._live(_fake_client(models, operations), api_key="k")

        with mock.patch.object(gateway, "_download_binary", return_value=b"mp4-bytes") as download:
            reference = await gateway.render_video(b"seed", self.config.video_generation.videos[0], self.config)

        self.assertEqual(operations.polls, 3)
        download.assert_called_once_with("https://files.example.test/v1/video?alt=media")
        self.assertEqual(Path(reference).read_bytes(), b"mp4-bytes")
        self.assertIn("slow cinematic motion.", models.video_calls[0]["prompt"])
        self.assertIn("dolly forward, pan", models.video_calls[0]["prompt"])

    async def test_poll_gives_up_after_max_wait(self) -> None:
        operations = _FakeOperations(pending_polls=None, final=None)
        models = _FakeModels(operation=SimpleNamespace(done=False))
        gateway = self._live(_fake_client(models, operations), poll_interval=0.01, max_wait=0.05)
        with self.assertRaises(VideoTimeoutError):
            await gateway.render_video(b"seed", self.config.video_generation.videos[0], self.config)
        self.assertGreater(operations.polls, 0)

    async def test_job_error_is_reported(self) -> None:
        failed = SimpleNamespace(done=True, error={"message": "blocked"}, response=None)
        gateway = self._live(_fake_client(_FakeModels(operation=failed), _FakeOperations(0, failed)))
        with self.assertRaisesRegex(GatewayError, "blocked"):
            await gateway.render_video(b"seed", self.config.video_generation.videos[0], self.config)

    async def test_missing_video_uri(self) -> None:
        finished = _finished_operation(uri=None)
        gateway = self._live(_fake_client(_FakeModels(operation=finished), _FakeOperations(0, finished)))
        with self.assertRaisesRegex(GatewayError, "Video generation failed"):
            await gateway.render_video(b"seed", self.config.video_generation.videos[0], self.config)


if __name__ == "__main__":
    unittest.main()
