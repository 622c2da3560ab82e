import json

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status

from ..core.errors import UnableToConvertData
from ..core.security import require_api_key
from ..schemas.asset import AssetCountRead, AssetRead, AssetType
from ..services.nest import AssetsNest, get_nest

router = APIRouter(prefix="/assets", tags=["assets"], dependencies=[Depends(require_api_key)])


def _parse_metadata(raw: str | None) -> dict | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise UnableToConvertData("metadata must be a JSON object") from exc
    if not isinstance(value, dict):
        raise UnableToConvertData("metadata must be a JSON object")
    return value


def _upload_metadata(raw: str | None, file: UploadFile) -> dict | None:
    metadata = _parse_metadata(raw)
    if file.filename or file.content_type:
        metadata = dict(metadata or {})
        if file.filename:
            metadata.setdefault("filename", file.filename)
        if file.content_type:
            metadata.setdefault("mime_type", file.content_type)
    return metadata


@router.get("/", response_model=list[AssetRead])
async def list_assets(
    type: str | None = None,
    ascending: bool = False,
    limit: int = Query(default=0, ge=0),
    offset: int = Query(default=0, ge=0),
    nest: AssetsNest = Depends(get_nest),
):
    asset_type = AssetType.from_string(type) if type else None
    assets = await nest.fetch_assets(limit, offset, type=asset_type, ascending=ascending)
    return [AssetRead.from_asset(asset) for asset in assets]


@router.get("/count", response_model=AssetCountRead)
async def count_assets(types: list[str] | None = Query(default=None), nest: AssetsNest = Depends(get_nest)):
    asset_types = [AssetType.from_string(value) for value in types] if types else None
    count = await nest.fetch_count(asset_types)
    return AssetCountRead(count=count, types=[t.value for t in asset_types] if asset_types else None)


@router.get("/{asset_id}", response_model=AssetRead)
async def get_asset(asset_id: str, nest: AssetsNest = Depends(get_nest)):
    return AssetRead.from_asset(await nest.fetch_asset(asset_id))


@router.get("/{asset_id}/data")
async def get_asset_data(asset_id: str, nest: AssetsNest = Depends(get_nest)):
    asset = await nest.fetch_asset(asset_id)
    data = await nest.fetch_asset_record_data(asset)
    mime_type = (asset.metadata or {}).get("mime_type")
    return Response(content=data, media_type=mime_type if isinstance(mime_type, str) else "application/octet-stream")


@router.post("/", response_model=AssetRead, status_code=status.HTTP_201_CREATED)
async def create_asset(
    file: UploadFile = File(...),
    type: str = Form("document"),
    metadata: str | None = Form(None),
    nest: AssetsNest = Depends(get_nest),
):
    data = await file.read()
    asset = await nest.create_asset(data, AssetType.from_string(type), _upload_metadata(metadata, file))
    return AssetRead.from_asset(asset)


@router.put("/{asset_id}", response_model=AssetRead)
async def update_asset(
    asset_id: str,
    file: UploadFile = File(...),
    type: str | None = Form(None),
    metadata: str | None = Form(None),
    nest: AssetsNest = Depends(get_nest),
):
    data = await file.read()
    await nest.update_asset(
        asset_id,
        data,
        type=AssetType.from_string(type) if type else None,
        metadata=_parse_metadata(metadata),
    )
    return AssetRead.from_asset(await nest.fetch_asset(asset_id))


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(asset_id: str, nest: AssetsNest = Depends(get_nest)):
    await nest.delete_asset(asset_id)
