import secrets

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader, APIKeyQuery
from starlette import status

from .config import get_settings


_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
# Lets <img src=".../data?api_key=..."> fetch blobs without custom headers
_api_key_query = APIKeyQuery(name="api_key", auto_error=False)


def require_api_key(
    request: Request,
    header_key: str | None = Security(_api_key_header),
    query_key: str | None = Security(_api_key_query),
) -> None:
    if request.method == "OPTIONS":
        return
    expected = get_settings().api_key
    if not expected:
        return
    supplied = header_key or query_key or ""
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
