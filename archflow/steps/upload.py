"""Upload step: accept the massing image and the JSON configuration."""

from __future__ import annotations

import binascii
import json
import logging
import mimetypes
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import default_config_text
from ..errors import ConfigError
from ..types import WorkflowConfig
from ..utils.files import decode_payload, read_binary, sha256_hex, to_data_url
from .base import BaseStep

logger = logging.getLogger(__name__)

INVALID_CONFIG_MESSAGE = "Invalid JSON configuration"
INVALID_IMAGE_MESSAGE = "Could not read the uploaded image"


@dataclass(frozen=True, slots=True)
class UploadView:
    config_text: str
    image_preview: Optional[str]
    can_submit: bool
    notification: Optional[str]


class UploadStep(BaseStep):
    """Collects inputs locally; nothing here touches the network."""

    _MAX_MASSING_DIM = 4096

    def __init__(
        self,
        run_id: str,
        logger,
        on_next: Callable[[bytes, WorkflowConfig], None],
        config_text: Optional[str] = None,
    ) -> None:
        super().__init__(name="Upload", run_id=run_id, logger=logger)
        self._on_next = on_next
        self.config_text = config_text if config_text is not None else default_config_text()
        self.image_preview: Optional[str] = None
        self.notification: Optional[str] = None

    @property
    def can_submit(self) -> bool:
        return self.image_preview is not None

    def load_image(self, source: bytes | str | Path) -> None:
        """Accept raw bytes, a ``data:`` URL, or a path to an image file."""
        if isinstance(source, (bytes, bytearray)):
            self.image_preview = to_data_url(bytes(source), "image/png")
        elif isinstance(source, str) and source.startswith("data:"):
            self.image_preview = source
        else:
            mime_type, _ = mimetypes.guess_type(str(source))
            self.image_preview = to_data_url(read_binary(source), mime_type or "image/png")

    def submit(self) -> bool:
        """Validate the configuration and hand both inputs to the workflow."""
        if self.image_preview is None or not self.config_text:
            return False

        try:
            config = WorkflowConfig.from_dict(json.loads(self.config_text))
        except (json.JSONDecodeError, ConfigError) as exc:
            self.notification = INVALID_CONFIG_MESSAGE
            logger.warning("Rejected workflow configuration: %s", exc)
            return False

        try:
            raw_bytes = decode_payload(self.image_preview)
        except binascii.Error as exc:
            self.notification = INVALID_IMAGE_MESSAGE
            logger.warning("Rejected image payload: %s", exc)
            return False

        massing = self._prepare_massing(raw_bytes)
        self.notification = None
        self.log_prompt(self.config_text)
        self.log_response(
            {
                "massing_sha256": sha256_hex(massing),
                "massing_bytes": len(massing),
                "config": config.to_dict(),
            }
        )
        self._on_next(massing, config)
        return True

    def view(self) -> UploadView:
        return UploadView(
            config_text=self.config_text,
            image_preview=self.image_preview,
            can_submit=self.can_submit,
            notification=self.notification,
        )

    def _prepare_massing(self, raw_bytes: bytes) -> bytes:
        """Normalise the upload into a PNG the generation service accepts."""
        try:
            with Image.open(BytesIO(raw_bytes)) as image:
                if getattr(image, "n_frames", 1) > 1:
                    image.seek(0)
                image = ImageOps.exif_transpose(image)
                if image.mode not in {"RGB", "RGBA"}:
                    image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
                if max(image.size) > self._MAX_MASSING_DIM:
                    image.thumbnail((self._MAX_MASSING_DIM, self._MAX_MASSING_DIM), Image.LANCZOS)
                output = BytesIO()
                image.save(output, format="PNG", optimize=True)
                return output.getvalue()
        except (UnidentifiedImageError, OSError):
            logger.warning("Upload is not a readable image; forwarding raw bytes")
        return raw_bytes
