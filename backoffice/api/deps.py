from collections.abc import AsyncIterator

from fastapi import HTTPException

from backoffice.services.exceptions import (
    ComputationError,
    CredentialNotFoundError,
    MarketplaceError,
    RefreshFailureError,
    SignatureInputError,
    SyncInProgressError,
    UpstreamAPIError,
)
from backoffice.shopee_client import ShopeeClient

_STATUS_BY_ERROR: list[tuple[type[MarketplaceError], int]] = [
    (CredentialNotFoundError, 404),
    (SyncInProgressError, 409),
    (ComputationError, 422),
    (RefreshFailureError, 400),
    (UpstreamAPIError, 400),
    (SignatureInputError, 500),
]


def http_error(e: MarketplaceError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            return HTTPException(status_code=status_code, detail=e.to_dict())
    return HTTPException(status_code=500, detail=e.to_dict())


async def get_shopee_client() -> AsyncIterator[ShopeeClient]:
    try:
        client = ShopeeClient()
    except SignatureInputError as e:
        raise http_error(e) from e
    try:
        yield client
    finally:
        await client.aclose()
