"""Behavioural tests for the five step controllers."""

from __future__ import annotations

import base64
import copy
import json
import tempfile
import unittest

from archflow.config import DEFAULT_WORKFLOW_CONFIG, default_workflow_config
from archflow.steps.analysis import ANALYSIS_ERROR_MESSAGE, AnalysisStatus, AnalysisStep
from archflow.steps.image_gen import ImageGenStep, ImageSlotStatus
from archflow.steps.proposal import ProposalStatus, ProposalStep
from archflow.steps.upload import INVALID_CONFIG_MESSAGE, INVALID_IMAGE_MESSAGE, UploadStep
from archflow.steps.video_gen import VideoGenStep, VideoSlotStatus
from archflow.types import GeneratedAsset, WorkflowConfig
from archflow.utils.files import to_data_url
from archflow.utils.run_logger import RunLogger
from tests.fakes import SAMPLE_ANALYSIS, SAMPLE_PROPOSALS, FakeGateway, png_bytes


class _LoggedTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.run_logger = RunLogger(self._tmp.name)
        self.emitted = []


class UploadStepTest(_LoggedTestCase):
    """Upload must never advance without an image and a parsed config."""

    def _step(self, config_text=None) -> UploadStep:
        return UploadStep(
            run_id="run",
            logger=self.run_logger,
            on_next=lambda image, config: self.emitted.append((image, config)),
            config_text=config_text,
        )

    def test_submit_without_image_does_nothing(self) -> None:
        step = self._step()
        self.assertFalse(step.can_submit)
        self.assertFalse(step.submit())
        self.assertEqual(self.emitted, [])

    def test_invalid_json_blocks_with_notification(self) -> None:
        step = self._step(config_text="{not json")
        step.load_image(png_bytes())
        self.assertFalse(step.submit())
        self.assertEqual(step.notification, INVALID_CONFIG_MESSAGE)
        self.assertEqual(self.emitted, [])
        self.assertEqual(step.view().notification, INVALID_CONFIG_MESSAGE)

    def test_structurally_invalid_config_blocks(self) -> None:
        step = self._step(config_text=json.dumps({"style": {}}))
        step.load_image(png_bytes())
        self.assertFalse(step.submit())
        self.assertEqual(self.emitted, [])

    def test_fixing_the_config_allows_resubmission(self) -> None:
        step = self._step(config_text="[")
        step.load_image(png_bytes())
        self.assertFalse(step.submit())
        step.config_text = json.dumps(DEFAULT_WORKFLOW_CONFIG)
        self.assertTrue(step.submit())
        self.assertIsNone(step.notification)
        self.assertEqual(len(self.emitted), 1)

    def test_float_count_is_accepted(self) -> None:
        data = copy.deepcopy(DEFAULT_WORKFLOW_CONFIG)
        data["image_generation"]["number_of_images"] = 4.0
        step = self._step(config_text=json.dumps(data))
        step.load_image(png_bytes())
        self.assertTrue(step.submit())
        self.assertIsNone(step.notification)
        self.assertEqual(self.emitted[0][1].image_generation.number_of_images, 4)

    def test_unknown_style_keys_are_forwarded(self) -> None:
        data = copy.deepcopy(DEFAULT_WORKFLOW_CONFIG)
        data["style"]["facade_rhythm"] = "vertical fins"
        step = self._step(config_text=json.dumps(data))
        step.load_image(png_bytes())
        self.assertTrue(step.submit())
        self.assertEqual(self.emitted[0][1].style.to_dict(), data["style"])

    def test_malformed_data_url_blocks_with_notification(self) -> None:
        step = self._step()
        step.load_image("data:image/png;base64,abc")
        self.assertFalse(step.submit())
        self.assertEqual(step.notification, INVALID_IMAGE_MESSAGE)
        self.assertEqual(self.emitted, [])

    def test_emits_png_without_transport_prefix(self) -> None:
        step = self._step()
        data_url = "data:image/jpeg;base64," + base64.b64encode(png_bytes()).decode("ascii")
        step.load_image(data_url)
        self.assertTrue(step.submit())
        image, config = self.emitted[0]
        self.assertTrue(image.startswith(b"\x89PNG"))
        self.assertEqual(config, default_workflow_config())

    def test_unreadable_image_is_forwarded_raw(self) -> None:
        step = self._step()
        step.load_image("data:image/png;base64," + base64.b64encode(b"hello").decode("ascii"))
        self.assertTrue(step.submit())
        self.assertEqual(self.emitted[0][0], b"hello")


class AnalysisStepTest(_LoggedTestCase):
    """One request per activation; errors surface, success waits for the user."""

    def _step(self, gateway: FakeGateway) -> AnalysisStep:
        return AnalysisStep(
            run_id="run",
            logger=self.run_logger,
            image=b"massing",
            gateway=gateway,
            on_complete=self.emitted.append,
        )

    async def test_success_requires_manual_proceed(self) -> None:
        step = self._step(FakeGateway())
        self.assertIs(step.status, AnalysisStatus.LOADING)
        await step.start()
        self.assertIs(step.status, AnalysisStatus.SUCCESS)
        self.assertEqual(self.emitted, [])
        self.assertTrue(step.proceed())
        self.assertEqual(self.emitted, [SAMPLE_ANALYSIS])

    async def test_failure_moves_to_error(self) -> None:
        step = self._step(FakeGateway(analysis_error=ValueError("malformed")))
        await step.start()
        self.assertIs(step.status, AnalysisStatus.ERROR)
        self.assertEqual(step.error, ANALYSIS_ERROR_MESSAGE)
        self.assertFalse(step.proceed())
        self.assertEqual(self.emitted, [])

    async def test_repeated_activation_issues_one_request(self) -> None:
        gateway = FakeGateway()
        step = self._step(gateway)
        first = step.start()
        second = step.start()
        self.assertIs(first, second)
        await first
        await step.start()
        self.assertEqual(len(gateway.analyze_calls), 1)


class ProposalStepTest(_LoggedTestCase):
    """Selection is manual and failures are only logged."""

    def _step(self, gateway: FakeGateway) -> ProposalStep:
        return ProposalStep(
            run_id="run",
            logger=self.run_logger,
            analysis=SAMPLE_ANALYSIS,
            config=default_workflow_config(),
            gateway=gateway,
            on_selected=self.emitted.append,
        )

    async def test_select_then_confirm(self) -> None:
        gateway = FakeGateway()
        step = self._step(gateway)
        await step.start()
        self.assertIs(step.status, ProposalStatus.READY)
        self.assertEqual(len(step.proposals), 2)
        self.assertEqual(gateway.propose_calls, [default_workflow_config().style])

        self.assertFalse(step.confirm())
        self.assertFalse(step.select("missing"))
        self.assertTrue(step.select("p2"))
        self.assertTrue(step.view().can_confirm)
        self.assertTrue(step.confirm())
        self.assertEqual(self.emitted, [SAMPLE_PROPOSALS[1]])

    async def test_failure_leaves_step_loading(self) -> None:
        step = self._step(FakeGateway(proposal_error=RuntimeError("quota")))
        await step.start()
        self.assertIs(step.status, ProposalStatus.LOADING)
        self.assertEqual(step.last_error, "quota")
        self.assertFalse(step.confirm())


class ImageGenStepTest(_LoggedTestCase):
    """Fan-out with tolerated failures and index-stable slots."""

    def _step(self, gateway: FakeGateway, config: WorkflowConfig | None = None) -> ImageGenStep:
        return ImageGenStep(
            run_id="run",
            logger=self.run_logger,
            base_image=b"massing",
            config=config or default_workflow_config(),
            proposal=SAMPLE_PROPOSALS[0],
            gateway=gateway,
            on_complete=self.emitted.append,
        )

    async def test_partial_failure_still_allows_advance(self) -> None:
        step = self._step(FakeGateway(fail_angles={"close"}))
        await step.start()

        self.assertEqual(step.completed, 4)
        self.assertEqual(len(step.arrivals), 3)
        self.assertTrue(step.can_advance)
        self.assertIs(step.slot_status(2), ImageSlotStatus.FAILED)
        self.assertIsNone(step.view().slots[2].asset)

        self.assertTrue(step.approve())
        handed_over = self.emitted[0]
        self.assertEqual(
            [asset.prompt_used for asset in handed_over],
            ["Angle: wide", "Angle: medium", "Angle: aerial"],
        )

    async def test_slot_labels_follow_request_index(self) -> None:
        delays = {"wide": 0.04, "medium": 0.03, "close": 0.02, "aerial": 0.0}
        step = self._step(FakeGateway(image_delays=delays))
        await step.start()

        self.assertEqual(step.arrivals[0].prompt_used, "Angle: aerial")
        view = step.view()
        self.assertEqual([slot.label for slot in view.slots], ["wide", "medium", "close", "aerial"])
        self.assertEqual(view.slots[0].asset.prompt_used, "Angle: wide")
        self.assertEqual(step.assets[0].prompt_used, "Angle: wide")

    async def test_placeholder_labels_before_results_arrive(self) -> None:
        step = self._step(FakeGateway())
        view = step.view()
        self.assertEqual(view.slots[0].label, "wide")
        self.assertIs(view.slots[0].status, ImageSlotStatus.PENDING)
        self.assertFalse(view.can_advance)

    async def test_all_failures_block_advance(self) -> None:
        step = self._step(FakeGateway(fail_angles={"wide", "medium", "close", "aerial"}))
        await step.start()
        self.assertEqual(step.completed, 4)
        self.assertEqual(step.arrivals, [])
        self.assertFalse(step.can_advance)
        self.assertFalse(step.approve())
        self.assertEqual(self.emitted, [])

    async def test_short_angle_list_falls_back(self) -> None:
        data = copy.deepcopy(DEFAULT_WORKFLOW_CONFIG)
        data["image_generation"]["camera_angles"] = ["wide"]
        data["image_generation"]["number_of_images"] = 2
        gateway = FakeGateway()
        step = self._step(gateway, WorkflowConfig.from_dict(data))
        await step.start()
        self.assertEqual(sorted(gateway.image_calls), ["dynamic perspective", "wide"])

    async def test_generating_flag_follows_the_job(self) -> None:
        step = self._step(FakeGateway())
        self.assertFalse(step.view().is_generating)
        task = step.start()
        self.assertTrue(step.view().is_generating)
        await task
        self.assertFalse(step.view().is_generating)
        self.assertTrue(step.view().can_advance)

    async def test_fan_out_happens_once(self) -> None:
        gateway = FakeGateway()
        step = self._step(gateway)
        step.start()
        await step.start()
        self.assertEqual(len(gateway.image_calls), 4)

    async def test_assets_are_inline_data_urls(self) -> None:
        step = self._step(FakeGateway())
        await step.start()
        asset = step.assets[0]
        self.assertEqual(asset.kind, "image")
        self.assertTrue(asset.url.startswith("data:image/png;base64,"))


class VideoGenStepTest(_LoggedTestCase):
    """Per-slot lifecycle for the terminal step."""

    def _source(self) -> list[GeneratedAsset]:
        return [
            GeneratedAsset(asset_id="img-0", kind="image", url=to_data_url(b"first"), prompt_used="Angle: wide"),
            GeneratedAsset(asset_id="img-1", kind="image", url=to_data_url(b"second"), prompt_used="Angle: medium"),
        ]

    def _step(self, gateway: FakeGateway, sources=None) -> VideoGenStep:
        return VideoGenStep(
            run_id="run",
            logger=self.run_logger,
            source_images=self._source() if sources is None else sources,
            config=default_workflow_config(),
            gateway=gateway,
        )

    async def test_slots_settle_independently(self) -> None:
        gateway = FakeGateway(fail_motion_styles={"dynamic cinematic"})
        step = self._step(gateway)
        self.assertEqual(step.statuses, [VideoSlotStatus.INITIALIZING] * 2)
        await step.start()

        self.assertTrue(step.settled)
        self.assertEqual(step.statuses, [VideoSlotStatus.COMPLETE, VideoSlotStatus.FAILED])
        self.assertIsNone(step.videos[1])
        self.assertEqual(gateway.video_seeds, [b"first", b"first"])

    async def test_provenance_is_motion_style(self) -> None:
        step = self._step(FakeGateway())
        await step.start()
        first = step.view()[0]
        self.assertEqual(first.duration_seconds, 12)
        self.assertEqual(first.asset.prompt_used, "slow cinematic")
        self.assertEqual(first.asset.kind, "video")
        self.assertEqual(first.asset.url, "https://videos.example.test/slow-cinematic.mp4")

    async def test_final_status_never_reverts(self) -> None:
        step = self._step(FakeGateway())
        await step.start()
        with self.assertRaises(RuntimeError):
            step._transition(0, VideoSlotStatus.GENERATING)
        self.assertIs(step.statuses[0], VideoSlotStatus.COMPLETE)

    async def test_no_seed_means_no_work(self) -> None:
        gateway = FakeGateway()
        step = self._step(gateway, sources=[])
        await step.start()
        self.assertEqual(gateway.video_calls, [])
        self.assertEqual(step.statuses, [VideoSlotStatus.INITIALIZING] * 2)

    async def test_video_fan_out_happens_once(self) -> None:
        gateway = FakeGateway()
        step = self._step(gateway)
        step.start()
        await step.start()
        self.assertEqual(len(gateway.video_calls), 2)


if __name__ == "__main__":
    unittest.main()
