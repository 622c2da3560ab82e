"""Sharded relative paths for stored blobs.

Blobs live at ``[<type-folder>/]<h[0:2]>/<h[2:4]>/<identifier>`` where ``h`` is
the hex MD5 digest of the identifier. Two levels of 256-way fan-out keep every
directory small no matter how many assets are stored, and keeping the
identifier as the file name makes a file traceable back to its asset.

Example::

    identifier         type    md5             path
    example-photo-id   photo   ab56b4d92b4...  photo/ab/56/example-photo-id
    another-video-id   -       e99a18c428c...  e9/9a/another-video-id
"""

from __future__ import annotations

import hashlib
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from ..core.errors import InvalidAssetIdentifier

if TYPE_CHECKING:
    from ..schemas.asset import AssetType


def md5_hex(identifier: str) -> str:
    return hashlib.md5(identifier.encode("utf-8")).hexdigest()


def validate_identifier(identifier: str) -> str:
    if not identifier or identifier in (".", ".."):
        raise InvalidAssetIdentifier(f"Invalid asset identifier: {identifier!r}")
    if "/" in identifier or "\\" in identifier or "\x00" in identifier:
        raise InvalidAssetIdentifier(f"Asset identifier contains a path separator: {identifier!r}")
    return identifier


def shard_prefix(identifier: str) -> tuple[str, str]:
    digest = md5_hex(identifier)
    return digest[:2], digest[2:4]


def derive_path(identifier: str, asset_type: AssetType | None = None) -> PurePosixPath:
    """Return the storage path of *identifier* relative to the storage root."""

    validate_identifier(identifier)
    first, second = shard_prefix(identifier)
    path = PurePosixPath(first, second, identifier)
    if asset_type is not None:
        path = PurePosixPath(asset_type.folder) / path
    return path
