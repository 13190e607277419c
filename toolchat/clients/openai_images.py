"""Image generation through the OpenAI Images API."""

from typing import Literal, Protocol

from openai import APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

from toolchat.errors import BackendUnavailable, OperationTimeout
from toolchat.models.attachments import GeneratedImage
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

ImageSize = Literal["256x256", "512x512", "1024x1024", "1792x1024", "1024x1792"]
ImageStyle = Literal["vivid", "natural"]


class ImageBackend(Protocol):
    async def generate(self, prompt: str, size: str = "1024x1024", style: str = "vivid") -> GeneratedImage: ...


class OpenAIImageClient:
    """DALL-E 3, one standard-quality image per call."""

    model = "dall-e-3"

    def __init__(self, api_key: str | None, timeout_seconds: float = 60.0, client: AsyncOpenAI | None = None):
        self.api_key = api_key
        self.client = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    async def generate(self, prompt: str, size: str = "1024x1024", style: str = "vivid") -> GeneratedImage:
        """Generate one image.

        Raises:
            OperationTimeout: the API did not answer in time
            BackendUnavailable: the API failed or returned no image URL
        """
        if self.client is None:
            raise BackendUnavailable("OpenAI API key is not configured")

        logger.info(f"Generating image ({size}, {style}) with prompt: {prompt!r}")
        try:
            response = await self.client.images.generate(
                model=self.model,
                prompt=prompt,
                size=size,
                quality="standard",
                style=style,
                n=1,
            )
        except APITimeoutError as e:
            raise OperationTimeout("Image generation timed out") from e
        except APIStatusError as e:
            raise BackendUnavailable(f"Image generation failed: {e.message}") from e
        except OpenAIError as e:
            raise BackendUnavailable(f"Image generation failed: {e}") from e

        url = response.data[0].url if response.data else None
        if not url:
            raise BackendUnavailable("Image generation returned no image URL")

        logger.info("Image generation successful")
        return GeneratedImage(url=url, prompt=prompt)
