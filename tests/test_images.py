import asyncio

import pytest
from PIL import Image

from assetnest.core.errors import AssetNotFound, InvalidImageFormat
from assetnest.schemas.asset import AssetType
from assetnest.services.images import (
    ImageFormat,
    create_image,
    decode_image,
    delete_image,
    read_image,
    update_image,
)


def _image(color=(200, 30, 30, 255), size=(16, 8)):
    return Image.new("RGBA", size, color)


def test_png_round_trip_is_lossless(nest):
    source = _image()

    async def scenario():
        asset = await create_image(nest, source, ImageFormat.png(), metadata={"mime_type": "image/png"})
        return asset, await read_image(nest, asset.id)

    asset, loaded = asyncio.run(scenario())
    assert asset.type == AssetType.PHOTO
    assert loaded.format == "PNG"
    assert loaded.size == (16, 8)
    assert loaded.getpixel((0, 0)) == (200, 30, 30, 255)


def test_jpeg_drops_alpha_and_keeps_size(nest):
    async def scenario():
        asset = await create_image(nest, _image(), ImageFormat.jpeg(0.5))
        return await read_image(nest, asset.id)

    loaded = asyncio.run(scenario())
    assert loaded.format == "JPEG"
    assert loaded.mode == "RGB"
    assert loaded.size == (16, 8)


def test_update_and_delete_image(nest):
    async def scenario():
        asset = await create_image(nest, _image(size=(4, 4)), ImageFormat.png())
        await update_image(nest, asset.id, _image(size=(32, 32)), ImageFormat.jpeg())
        resized = await read_image(nest, asset.id)
        await delete_image(nest, asset.id)
        return resized, asset

    resized, asset = asyncio.run(scenario())
    assert resized.size == (32, 32)
    with pytest.raises(AssetNotFound):
        asyncio.run(nest.fetch_asset(asset.id))


def test_non_image_data_raises_invalid_format(nest):
    with pytest.raises(InvalidImageFormat):
        decode_image(b"definitely not an image")

    async def scenario():
        asset = await nest.create_asset(b"plain text", AssetType.DOCUMENT)
        await read_image(nest, asset.id)

    with pytest.raises(InvalidImageFormat):
        asyncio.run(scenario())


@pytest.mark.parametrize("quality", [-0.1, 1.5])
def test_jpeg_quality_must_be_a_fraction(quality):
    with pytest.raises(ValueError):
        ImageFormat.jpeg(quality)


def test_format_descriptions():
    assert ImageFormat.png().mime_type == "image/png"
    assert ImageFormat.jpeg().file_extension == "jpg"
    assert ImageFormat.jpeg().quality == 0.8
