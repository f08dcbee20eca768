"""Compress/decompress façade over HybridStorage.

compress stores a payload under its content key and hands the key back;
decompress turns a key back into the payload.
"""

from typing import Optional

from codemap.addressing import address_of
from codemap.exceptions import InvalidPayload
from codemap.storage.hybrid import HybridStorage
from codemap.utils.logging import get_logger

logger = get_logger(__name__)


class CodeMapService:
    def __init__(self, storage: HybridStorage, ttl_seconds: Optional[int] = None):
        self.storage = storage
        self.ttl_seconds = ttl_seconds

    async def compress(self, payload: str) -> str:
        """Store ``payload`` if it is new and return its content key.

        The existence check and the write are not atomic. Two concurrent
        calls with the same new payload may both write, which is harmless
        because they write the same value under the same key.

        Raises:
            InvalidPayload: If payload is empty or not a string
            StorageUnavailable: If the payload is new and no backend took it
        """
        if not isinstance(payload, str) or len(payload) == 0:
            raise InvalidPayload("payload must be a non-empty string")

        key = address_of(payload)
        if await self.storage.get(key) is not None:
            logger.debug(f"compress: {key} already stored")
            return key

        await self.storage.put(key, payload, self.ttl_seconds)
        return key

    async def decompress(self, key: str) -> Optional[str]:
        """Return the payload for ``key``, or None if it cannot be found."""
        if not isinstance(key, str) or len(key) == 0:
            raise InvalidPayload("Missing payload parameter")
        return await self.storage.get(key)
