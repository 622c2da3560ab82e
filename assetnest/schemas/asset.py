from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Union
from urllib.parse import urlsplit

from pydantic import BaseModel, TypeAdapter, ValidationError
from typing_extensions import TypeAliasType

from ..core.errors import InvalidAssetType, InvalidAssetURL, UnableToConvertData

logger = logging.getLogger(__name__)

ASSET_URI_SCHEME = "nest-asset"

MetadataValue = TypeAliasType(
    "MetadataValue",
    "Union[str, bool, int, float, List[MetadataValue], Dict[str, MetadataValue]]",
)
Metadata = Dict[str, MetadataValue]

_METADATA_ADAPTER: TypeAdapter[Dict[str, Any]] = TypeAdapter(Dict[str, MetadataValue])


@dataclass(frozen=True)
class AssetType:
    """Category of an asset: one of the built-in kinds or a caller-defined name."""

    value: str
    is_custom: bool = False

    BUILTIN: ClassVar[tuple[str, ...]] = ("photo", "video", "document", "audio")
    PHOTO: ClassVar["AssetType"]
    VIDEO: ClassVar["AssetType"]
    DOCUMENT: ClassVar["AssetType"]
    AUDIO: ClassVar["AssetType"]

    def __post_init__(self) -> None:
        if self.is_custom:
            if not self.value:
                raise InvalidAssetType("A custom asset type needs a name")
            if self.value.lower() in self.BUILTIN:
                raise InvalidAssetType(f"Custom asset type {self.value!r} collides with a built-in type")
        elif self.value not in self.BUILTIN:
            raise InvalidAssetType(f"Unknown asset type {self.value!r}")

    @classmethod
    def custom(cls, name: str) -> "AssetType":
        return cls(name, is_custom=True)

    @classmethod
    def from_string(cls, value: str) -> "AssetType":
        lowered = value.lower()
        if lowered in cls.BUILTIN:
            return cls(lowered)
        if not value:
            return cls.DOCUMENT
        return cls.custom(value)

    @property
    def folder(self) -> str:
        return "custom" if self.is_custom else self.value

    def __str__(self) -> str:
        return self.value


AssetType.PHOTO = AssetType("photo")
AssetType.VIDEO = AssetType("video")
AssetType.DOCUMENT = AssetType("document")
AssetType.AUDIO = AssetType("audio")


def validate_metadata(metadata: Optional[Dict[str, Any]]) -> Optional[Metadata]:
    if metadata is None:
        return None
    try:
        return _METADATA_ADAPTER.validate_python(metadata, strict=True)
    except ValidationError as exc:
        raise UnableToConvertData(f"Unsupported metadata value: {exc.errors()[0]['loc']}") from exc


def encode_metadata(metadata: Optional[Metadata]) -> Optional[str]:
    """Serialize a metadata map into the JSON text stored beside the asset."""

    if metadata is None:
        return None
    return _METADATA_ADAPTER.dump_json(validate_metadata(metadata)).decode("utf-8")


def decode_metadata(payload: Optional[str]) -> Optional[Metadata]:
    if payload is None:
        return None
    try:
        return _METADATA_ADAPTER.validate_json(payload, strict=True)
    except ValidationError:
        logger.warning("Failed to decode stored asset metadata", exc_info=True)
        return None


def is_asset_url(url: str) -> bool:
    return urlsplit(url).scheme == ASSET_URI_SCHEME


def identifier_from_url(url: str) -> Optional[str]:
    """Return the asset id embedded in a ``nest-asset:/<id>`` URL, or ``None``."""

    parts = urlsplit(url)
    if parts.scheme != ASSET_URI_SCHEME:
        return None
    identifier = parts.path[1:] if parts.path.startswith("/") else parts.path
    return identifier or None


@dataclass(frozen=True)
class NestAsset:
    id: str
    type: AssetType
    created_at: datetime
    modified_at: Optional[datetime] = None
    file_size: int = 0
    metadata: Optional[Metadata] = None

    @property
    def asset_url(self) -> str:
        return f"{ASSET_URI_SCHEME}:/{self.id}"


@dataclass(frozen=True)
class AssetIdentifier:
    """Either a raw asset id or an opaque ``nest-asset:/`` URL."""

    id: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_id(cls, identifier: str) -> "AssetIdentifier":
        return cls(id=identifier)

    @classmethod
    def from_url(cls, url: str) -> "AssetIdentifier":
        return cls(url=url)

    @classmethod
    def coerce(cls, value: Union["AssetIdentifier", str]) -> "AssetIdentifier":
        if isinstance(value, AssetIdentifier):
            return value
        return cls.from_id(value)

    def resolve(self) -> str:
        if self.id is not None:
            return self.id
        identifier = identifier_from_url(self.url or "")
        if identifier is None:
            raise InvalidAssetURL(f"Not a {ASSET_URI_SCHEME} URL: {self.url!r}")
        return identifier


class AssetRead(BaseModel):
    id: str
    type: str
    is_custom_type: bool
    asset_url: str
    created_at: datetime
    modified_at: datetime | None
    file_size: int
    metadata: dict[str, Any] | None

    @classmethod
    def from_asset(cls, asset: NestAsset) -> "AssetRead":
        return cls(
            id=asset.id,
            type=asset.type.value,
            is_custom_type=asset.type.is_custom,
            asset_url=asset.asset_url,
            created_at=asset.created_at,
            modified_at=asset.modified_at,
            file_size=asset.file_size,
            metadata=asset.metadata,
        )


class AssetCountRead(BaseModel):
    count: int
    types: list[str] | None = None
