"""Chat backends used by the description and concept synthesis stages.

:class:`ChatBackend` is the small interface the pipeline depends on:

- :meth:`ChatBackend.describe_image` — vision call, one image plus a fixed
  instruction, returns text.
- :meth:`ChatBackend.complete` — plain text completion with a system prompt
  and sampling temperature, returns text.

:class:`OpenAIChatBackend` implements both on top of the OpenAI chat
completions API.  The ``AsyncOpenAI`` client is created lazily on first use,
so the service can start without credentials; a missing key then fails the
individual request with a :class:`~imagefusion.core.errors.BackendError`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import openai
from openai import AsyncOpenAI

from .errors import BackendError

logger = logging.getLogger(__name__)


class ChatBackend(ABC):
    """Abstract text/vision backend."""

    @abstractmethod
    async def describe_image(self, image_url: str, instruction: str, max_tokens: int) -> str:
        """Describe one image.

        Args:
            image_url: Data URI or fetchable URL of the image.
            instruction: Fixed instruction sent alongside the image.
            max_tokens: Output length cap.

        Returns:
            The raw text returned by the model.

        Raises:
            BackendError: If the call fails or returns no content.
        """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Run a text completion.

        Raises:
            BackendError: If the call fails or returns no content.
        """


class OpenAIChatBackend(ChatBackend):
    """Chat backend backed by OpenAI chat completions.

    Attributes:
        vision_model: Model used by :meth:`describe_image`.
        text_model: Model used by :meth:`complete`.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        vision_model: str = "gpt-4o",
        text_model: str = "gpt-4o",
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.api_key = api_key
        self.vision_model = vision_model
        self.text_model = text_model
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """The lazily created ``AsyncOpenAI`` client."""
        if self._client is None:
            try:
                self._client = AsyncOpenAI(api_key=self.api_key)
            except openai.OpenAIError as e:
                raise BackendError(f"OpenAI client unavailable: {e}") from e
        return self._client

    async def describe_image(self, image_url: str, instruction: str, max_tokens: int) -> str:
        logger.info(f"Describing image with {self.vision_model}")
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": instruction},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }
        ]
        return await self._chat(self.vision_model, messages, max_tokens=max_tokens)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        logger.info(f"Running completion with {self.text_model} (temperature={temperature})")
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self._chat(
            self.text_model, messages, max_tokens=max_tokens, temperature=temperature
        )

    async def _chat(self, model: str, messages: list[dict], **params) -> str:
        client = self.client
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                **params,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI chat call failed: {e}")
            raise BackendError(str(e)) from e

        if not response.choices:
            raise BackendError(f"{model} returned no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise BackendError(f"{model} returned an empty response")

        logger.debug(f"{model} response: {content[:80]}")
        return content
