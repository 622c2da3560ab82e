from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any

from PIL import Image, UnidentifiedImageError

from ..core.errors import InvalidImageFormat, UnableToConvertData
from ..schemas.asset import AssetType, NestAsset
from .nest import AssetsNest, IdentifierLike


@dataclass(frozen=True)
class ImageFormat:
    """PNG, or JPEG with a 0..1 compression quality."""

    name: str
    quality: float | None = None

    @classmethod
    def png(cls) -> "ImageFormat":
        return cls("png")

    @classmethod
    def jpeg(cls, quality: float = 0.8) -> "ImageFormat":
        if not 0.0 <= quality <= 1.0:
            raise ValueError("JPEG quality must be between 0 and 1")
        return cls("jpeg", quality)

    @property
    def file_extension(self) -> str:
        return "jpg" if self.name == "jpeg" else "png"

    @property
    def mime_type(self) -> str:
        return f"image/{self.name}"

    def encode(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        try:
            if self.name == "jpeg":
                if image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")
                image.save(buffer, format="JPEG", quality=max(1, round(self.quality * 95)))
            else:
                image.save(buffer, format="PNG")
        except (OSError, ValueError) as exc:
            raise UnableToConvertData(f"Cannot encode image as {self.name}: {exc}") from exc
        return buffer.getvalue()


def decode_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageFormat() from exc
    return image


async def create_image(
    nest: AssetsNest,
    image: Image.Image,
    image_format: ImageFormat,
    type: AssetType = AssetType.PHOTO,
    metadata: dict[str, Any] | None = None,
) -> NestAsset:
    return await nest.create_asset(image_format.encode(image), type, metadata)


async def update_image(
    nest: AssetsNest,
    identifier: IdentifierLike,
    image: Image.Image,
    image_format: ImageFormat,
    type: AssetType | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    await nest.update_asset(identifier, image_format.encode(image), type=type, metadata=metadata)


async def read_image(nest: AssetsNest, identifier: IdentifierLike) -> Image.Image:
    return decode_image(await nest.fetch_asset_data(identifier))


async def delete_image(nest: AssetsNest, identifier: IdentifierLike) -> None:
    await nest.delete_asset(identifier)
