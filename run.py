"""Command-line entry point for the ArchFlow workflow."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from archflow.config import AppConfig
from archflow.pipeline import ArchFlowAgent
from archflow.steps.video_gen import VideoGenStep
from archflow.types import VisualProposal


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Render a massing model into stills and clips.")
    parser.add_argument("image_path", help="Path to the massing model image.")
    parser.add_argument("--config", help="JSON workflow configuration (defaults to the built-in template).")
    parser.add_argument(
        "--proposal",
        type=int,
        help="1-based index of the visual direction to use; asks interactively when omitted.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--mock", dest="mock", action="store_true", default=None, help="Use local stand-ins.")
    mode.add_argument("--live", dest="mock", action="store_false", help="Call the Gemini and Veo APIs.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every state transition.")
    return parser.parse_args(argv)


def _chooser(index: int | None):
    def choose(proposals: Sequence[VisualProposal]) -> VisualProposal:
        if index is not None:
            return proposals[max(1, min(index, len(proposals))) - 1]
        for number, proposal in enumerate(proposals, start=1):
            print(f"  [{number}] {proposal.title}: {proposal.description}")
        while True:
            answer = input(f"Choose a direction [1-{len(proposals)}]: ").strip()
            if answer.isdigit() and 1 <= int(answer) <= len(proposals):
                return proposals[int(answer) - 1]

    return choose


def main(argv: list[str] | None = None) -> int:
    """Entry point used by ``python run.py``."""
    load_dotenv()
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = AppConfig.from_env()
    if args.mock is not None:
        config.enable_mock_generation = args.mock
    agent = ArchFlowAgent(config)
    if not agent.gateway.ensure_credential(lambda: getpass.getpass("Gemini API key: ")):
        print("A Gemini API key is required for live generation.", file=sys.stderr)
        return 2

    config_text = Path(args.config).read_text(encoding="utf-8") if args.config else None
    result = asyncio.run(
        agent.run(
            image_path=args.image_path,
            config_text=config_text,
            choose_proposal=_chooser(args.proposal),
        )
    )

    workflow = result.workflow
    if result.halted_at is not None:
        print(f"Stopped at {result.halted_at.value}: {result.reason}")
        return 1

    for asset in workflow.state.generated_images:
        print(f"image {asset.asset_id}: {asset.prompt_used}")
    controller = workflow.active_controller()
    if isinstance(controller, VideoGenStep):
        for slot in controller.view():
            location = slot.asset.url if slot.asset else "-"
            print(f"video {slot.index} [{slot.status.value}] {slot.motion_style}: {location}")
    print(f"Run logs stored under {agent.logger.base_dir / workflow.run_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
