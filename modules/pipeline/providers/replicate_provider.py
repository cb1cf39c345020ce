"""
Image generation via the Replicate API.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx
import replicate

from shared.config import settings
from shared.errors import ConfigError, GenerationError, RateLimitError, RetryableError
from shared.logging import get_logger
from shared.retry import retry_with_backoff
from modules.pipeline.config import IMAGE_TIMEOUT_SECONDS

logger = get_logger("pipeline.providers.replicate")


def _aspect_ratio(width: int, height: int) -> str:
    if width == height:
        return "1:1"
    return "16:9" if width > height else "9:16"


def _extract_output_url(output: Any) -> str:
    """Replicate returns a FileOutput, a URL string, or a list of either."""
    item = output[0] if isinstance(output, list) and output else output
    if not item:
        raise GenerationError("No output returned from Replicate API")
    url = item.url if hasattr(item, "url") else str(item)
    if not isinstance(url, str):
        url = str(url)
    if not url:
        raise GenerationError("No output URL returned from Replicate API")
    return url


class ReplicateImageGenerator:
    """ImageGenerator backed by a Replicate text-to-image model."""

    def __init__(
        self,
        client: Optional[replicate.Client] = None,
        model: Optional[str] = None,
        timeout: float = IMAGE_TIMEOUT_SECONDS
    ):
        if client is None:
            if not settings.replicate_api_token:
                raise ConfigError("REPLICATE_API_TOKEN is required for image generation")
            client = replicate.Client(api_token=settings.replicate_api_token)
        self.client = client
        self.model = model or settings.replicate_image_model
        self.timeout = timeout

    def _build_input(self, prompt: str, width: int, height: int, seed: Optional[int]) -> Dict[str, Any]:
        model_input: Dict[str, Any] = {
            "prompt": prompt,
            "aspect_ratio": _aspect_ratio(width, height),
            "output_format": "png",
            "num_outputs": 1,
        }
        # Replicate rejects a null seed
        if seed is not None:
            model_input["seed"] = seed
        return model_input

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def generate(self, prompt: str, width: int, height: int, seed: Optional[int] = None) -> bytes:
        """
        Generate one image and download its bytes.

        Raises:
            GenerationError: Timeout, empty output or rejected request
            RateLimitError: HTTP 429 (retried)
            RetryableError: Network or 5xx failure (retried)
        """
        start_time = time.time()
        try:
            output = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.run,
                    self.model,
                    input=self._build_input(prompt, width, height, seed)
                ),
                timeout=self.timeout
            )
            output_url = _extract_output_url(output)

            async with httpx.AsyncClient(timeout=60.0) as http_client:
                response = await http_client.get(output_url)
                response.raise_for_status()
                image_bytes = response.content

        except asyncio.TimeoutError:
            raise GenerationError(f"Timeout generating image after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise RateLimitError(f"Rate limit exceeded downloading image: {e}")
            if 400 <= e.response.status_code < 500:
                raise GenerationError(f"Client error downloading image: {e}")
            raise RetryableError(f"Server error downloading image: {e}")
        except httpx.RequestError as e:
            raise RetryableError(f"Network error generating image: {e}")
        except GenerationError:
            raise
        except Exception as e:
            error_str = str(e).lower()
            if any(keyword in error_str for keyword in ["invalid", "validation", "bad request", "400", "not found", "404"]):
                raise GenerationError(f"Image request rejected by {self.model}: {e}")
            raise RetryableError(f"Error generating image: {e}")

        logger.info(
            f"Generated image in {time.time() - start_time:.2f}s",
            extra={"model": self.model, "size": len(image_bytes), "seed": seed}
        )
        return image_bytes
