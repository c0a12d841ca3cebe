"""
Vision analysis collaborators.

The pipeline only depends on VisionAnalyzer.detect(); OpenAIVisionAnalyzer
talks to a vision-capable chat model and MockVisionAnalyzer replays scripted
responses for tests and offline runs.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Union

from config import Config
from exceptions import EmptyResponse, MalformedResponseError, NonRetryableCollaboratorError
from models import RawDetection
from prompt_templates import (
    IMAGE_ANALYSIS_SYSTEM_PROMPT, build_annotated_image_prompt, build_single_image_prompt,
)

logger = logging.getLogger(__name__)


def parse_detections(content: Optional[str]) -> List[RawDetection]:
    """Parse the model's JSON answer into raw detections.

    Raises EmptyResponse for no content and MalformedResponseError for
    anything that is not an object with a list of named items.
    """
    if content is None or not content.strip():
        raise EmptyResponse("Empty response from vision model")

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Vision model returned invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedResponseError("Vision model response is not a JSON object")

    items = payload.get("items", [])
    if items is None:
        return []
    if not isinstance(items, list):
        raise MalformedResponseError("'items' is not a list")

    try:
        return [RawDetection.from_dict(item) for item in items]
    except ValueError as e:
        raise MalformedResponseError(str(e)) from e


class VisionAnalyzer(ABC):
    """Abstract interface for vision analysis collaborators."""

    @abstractmethod
    async def detect(self, image_bytes: bytes, prompt_context: Sequence[str] = (),
                     language: str = "en", with_metadata: bool = True) -> List[RawDetection]:
        """Return the items visible in one image.

        Args:
            image_bytes: JPEG encoded image
            prompt_context: Descriptions of items already found in the request
            language: Language code for the model's answer
            with_metadata: Ask for position/color/background per item
        """
        pass


class OpenAIVisionAnalyzer(VisionAnalyzer):
    """Vision analysis through the OpenAI chat completions API."""

    def __init__(self, config: Config, client=None):
        self.config = config
        self._client = client  # Lazy-created on first call

    def _get_client(self):
        if self._client is None:
            if not self.config.vision.api_key:
                raise NonRetryableCollaboratorError("OPENAI_API_KEY is not configured")
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.config.vision.api_key,
                timeout=self.config.vision.request_timeout,
                max_retries=0,  # retries are handled by the detection adapter
            )
        return self._client

    def build_messages(self, image_bytes: bytes, prompt_context: Sequence[str],
                       language: str, with_metadata: bool) -> list:
        if with_metadata:
            text = build_annotated_image_prompt(language, prompt_context)
        else:
            text = build_single_image_prompt(language)

        encoded = base64.b64encode(image_bytes).decode("ascii")
        return [
            {"role": "system", "content": IMAGE_ANALYSIS_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": text},
                    {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}},
                ],
            },
        ]

    async def detect(self, image_bytes: bytes, prompt_context: Sequence[str] = (),
                     language: str = "en", with_metadata: bool = True) -> List[RawDetection]:
        if not image_bytes:
            raise NonRetryableCollaboratorError("Image is empty")

        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.config.vision.model,
            messages=self.build_messages(image_bytes, prompt_context, language, with_metadata),
            max_tokens=self.config.vision.max_tokens,
            response_format={"type": "json_object"},
        )

        content = response.choices[0].message.content if response.choices else None
        detections = parse_detections(content)
        logger.debug(f"Vision model returned {len(detections)} items")
        return detections


ScriptedResponse = Union[Sequence[Union[RawDetection, dict]], BaseException, str]


class MockVisionAnalyzer(VisionAnalyzer):
    """
    Replays scripted responses, one per call.

    Each response is a list of detections (RawDetection or dict), a JSON
    string run through the real parser, or an exception to raise. When the
    script runs out the last response is repeated.
    """

    def __init__(self, responses: Optional[List[ScriptedResponse]] = None):
        self.responses = list(responses or [[]])
        self.calls: List[dict] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def detect(self, image_bytes: bytes, prompt_context: Sequence[str] = (),
                     language: str = "en", with_metadata: bool = True) -> List[RawDetection]:
        index = min(len(self.calls), len(self.responses) - 1)
        self.calls.append({
            'image_bytes': image_bytes,
            'prompt_context': list(prompt_context),
            'language': language,
            'with_metadata': with_metadata,
        })

        response: Any = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, str):
            return parse_detections(response)
        return [r if isinstance(r, RawDetection) else RawDetection.from_dict(r) for r in response]

    def reset_stats(self):
        """Reset recorded calls for testing."""
        self.calls = []
