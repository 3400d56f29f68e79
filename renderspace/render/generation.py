"""
Generation Service

Wraps the OpenAI images.edit endpoint. Three modes:
- transform: collage -> photorealistic room render
- remove_background: room photo -> the same room, emptied of furniture
- compose: empty room + style collage -> furnished room render
"""

import base64
from dataclasses import dataclass
from typing import Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from renderspace.config import config
from renderspace.utils.logging import render_logger as logger


class GenerationError(Exception):
    """Raised when the provider does not return an image."""
    pass


@dataclass
class GenerationResult:
    """Raw artifact bytes plus the prompt that produced them."""
    image_data: bytes
    prompt: str


def build_transform_prompt(room_type: str, lighting: str) -> str:
    return (
        f"Transform this collage image into a photorealistic interior design "
        f"visualization of a {room_type} with {lighting} lighting. Maintain the key "
        f"design elements, patterns, and style from the collage but render it as a "
        f"realistic 3D scene."
    )


def build_remove_background_prompt(room_type: str) -> str:
    return (
        f"Remove all furniture, decor and loose objects from this photo of a "
        f"{room_type}. Keep the walls, floor, windows, doors and architecture "
        f"exactly as they are, with the same camera angle and natural light."
    )


def build_compose_prompt(room_type: str, lighting: str) -> str:
    return (
        f"The first image is an empty {room_type}. The second image is a style "
        f"collage. Furnish and decorate the empty room using the furniture, "
        f"materials, colors and patterns from the style collage. Keep the room's "
        f"architecture and camera angle unchanged and render it photorealistically "
        f"with {lighting} lighting."
    )


class GenerationService:
    """
    Adapter over the AI image provider.

    Every method returns a GenerationResult or raises GenerationError.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        model: Optional[str] = None,
        size: Optional[str] = None,
    ):
        self._client = client
        self._http_client = http_client
        self.model = model or config.IMAGE_MODEL
        self.size = size or config.IMAGE_SIZE

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not config.OPENAI_API_KEY:
                raise GenerationError("OpenAI not configured (OPENAI_API_KEY is missing)")
            self._client = AsyncOpenAI(
                api_key=config.OPENAI_API_KEY,
                timeout=config.OPENAI_TIMEOUT_SECONDS,
            )
        return self._client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
        if self._client is not None:
            await self._client.close()

    # =========================================================================
    # Modes
    # =========================================================================

    async def transform(
        self,
        input_image_url: str,
        room_type: str,
        lighting: str
    ) -> GenerationResult:
        """Single-step render from a collage."""
        image = await self.fetch_image(input_image_url)
        prompt = build_transform_prompt(room_type, lighting)
        image_data = await self._edit([("input_collage.png", image)], prompt)
        return GenerationResult(image_data=image_data, prompt=prompt)

    async def remove_background(
        self,
        room_photo_url: str,
        room_type: str
    ) -> GenerationResult:
        """First placement step: empty the room photo."""
        image = await self.fetch_image(room_photo_url)
        prompt = build_remove_background_prompt(room_type)
        image_data = await self._edit([("room_photo.png", image)], prompt)
        return GenerationResult(image_data=image_data, prompt=prompt)

    async def compose(
        self,
        empty_room_image: bytes,
        style_image_url: str,
        room_type: str,
        lighting: str
    ) -> GenerationResult:
        """Second placement step: furnish the empty room in the collage's style."""
        style_image = await self.fetch_image(style_image_url)
        prompt = build_compose_prompt(room_type, lighting)
        image_data = await self._edit(
            [("empty_room.png", empty_room_image), ("style_collage.png", style_image)],
            prompt,
        )
        return GenerationResult(image_data=image_data, prompt=prompt)

    # =========================================================================
    # Provider calls
    # =========================================================================

    async def fetch_image(self, url: str) -> bytes:
        """Download an input image."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=config.INPUT_FETCH_TIMEOUT_SECONDS,
                follow_redirects=True,
            )

        try:
            response = await self._http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise GenerationError(f"Failed to get input image: {url} ({e})") from e

        return response.content

    async def _edit(self, images: list[tuple[str, bytes]], prompt: str) -> bytes:
        files = [(name, data, "image/png") for name, data in images]
        logger.debug(
            "Calling images.edit",
            model=self.model,
            images=len(files),
            prompt=prompt[:100],
        )

        try:
            response = await self.client.images.edit(
                model=self.model,
                image=files if len(files) > 1 else files[0],
                prompt=prompt,
                n=1,
                size=self.size,
            )
        except OpenAIError as e:
            raise GenerationError(f"OpenAI API error: {e}") from e

        if not response.data or not response.data[0].b64_json:
            raise GenerationError("No b64_json in OpenAI images.edit response")

        return base64.b64decode(response.data[0].b64_json)
