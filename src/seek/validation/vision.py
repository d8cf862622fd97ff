"""Vision provider boundary — image + prompt in, model text out.

The adjudicator only depends on the ``VisionProvider`` protocol. The
Gemini implementation imports its SDK lazily so the rest of the package
(and the test suite) does not need network credentials to load.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class VisionProvider(Protocol):
    """Anything that can describe an image against a prompt."""

    def analyze(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        """Return the model's raw text response."""
        ...


class GeminiVisionProvider:
    """Google Gemini multimodal model.

    Parameters (via *config* dict):
        temperature        : float — sampling temperature (default 0.1)
        max_output_tokens  : int   — response cap (default 500)
        timeout_seconds    : int   — request timeout (default 30)
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-1.5-flash",
        config: Optional[dict] = None,
    ) -> None:
        import google.generativeai as genai

        config = config or {}
        genai.configure(api_key=api_key)
        self._model = genai.GenerativeModel(model_name)
        self._model_name = model_name
        self._generation_config: dict[str, Any] = {
            "temperature": config.get("temperature", 0.1),
            "max_output_tokens": config.get("max_output_tokens", 500),
        }
        self._timeout: int = config.get("timeout_seconds", 30)

    def analyze(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        response = self._model.generate_content(
            [prompt, {"mime_type": mime_type, "data": image_bytes}],
            generation_config=self._generation_config,
            request_options={"timeout": self._timeout},
        )
        logger.debug("Vision response received from %s", self._model_name)
        return response.text
