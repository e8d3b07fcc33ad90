"""Entry points used by the transport layer: registry call first, broadcast on success."""

import logging
from typing import BinaryIO, List, Tuple, Union

from share_api.broadcaster import EventBroadcaster, Subscription
from share_api.registry import FileRegistry
from share_api.schemas import FileEvent, FileRecord

logger = logging.getLogger(__name__)


class SessionGateway:
    def __init__(self, registry: FileRegistry, broadcaster: EventBroadcaster):
        self.registry = registry
        self.broadcaster = broadcaster

    async def handle_upload(self, display_name: str, content: Union[bytes, BinaryIO]) -> FileRecord:
        record = await self.registry.register(display_name, content)
        self.broadcaster.publish(FileEvent.file_added(record))
        return record

    async def handle_delete(self, storage_key: str) -> FileRecord:
        record = await self.registry.delete(storage_key)
        self.broadcaster.publish(FileEvent.file_removed(record.storage_key))
        return record

    async def handle_list(self) -> List[FileRecord]:
        return await self.registry.list()

    async def handle_download(self, storage_key: str) -> Tuple[FileRecord, BinaryIO]:
        return await self.registry.open(storage_key)

    def handle_subscribe(self) -> Subscription:
        return self.broadcaster.subscribe()

    def handle_unsubscribe(self, subscription: Subscription) -> None:
        self.broadcaster.unsubscribe(subscription)
