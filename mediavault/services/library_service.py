"""
媒体库服务

容器、公开拉取队列、文件的最小存取接口
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from tortoise.transactions import in_transaction

from mediavault.core.exceptions import (
    ContainerNotFoundError, MediaFileNotFoundError, QueueItemNotFoundError
)
from mediavault.models.library import (
    Container, ContainerStatus, MediaFile, QueueItem, QueueStatus
)
from mediavault.providers.terabox import RemoteItem
from mediavault.utils.helpers import resolve_share

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class LibraryService:
    """媒体库服务"""

    # ==================== 容器 ====================

    async def create_container(self, url: str, title: Optional[str] = None,
                               thumbnail: Optional[str] = None, type: str = "unknown",
                               file_count: Optional[int] = None) -> Container:
        """创建容器"""
        ref = resolve_share(url)
        container = await Container.create(
            id=_new_id(),
            url=url,
            surl=ref.surl if ref else None,
            title=title or "Untitled",
            thumbnail=thumbnail,
            type=type,
            file_count=file_count,
        )
        logger.info(f"Created container: {container.id}")
        return container

    async def get_container(self, container_id: str) -> Container:
        container = await Container.filter(id=container_id).first()
        if not container:
            raise ContainerNotFoundError(container_id)
        return container

    async def list_containers(self) -> List[Container]:
        return await Container.all().order_by("-created_at")

    async def apply_public_metadata(self, container: Container, title: Optional[str],
                                    thumbnail: Optional[str], type: str,
                                    file_count: int) -> Container:
        """用公开拉取结果更新容器"""
        container.title = title or container.title
        container.thumbnail = thumbnail or container.thumbnail
        container.type = type
        container.file_count = file_count
        await container.save()
        return container

    # ==================== 队列 ====================

    async def add_to_queue(self, url: str) -> QueueItem:
        ref = resolve_share(url)
        item = await QueueItem.create(id=_new_id(), url=url, surl=ref.surl if ref else None)
        logger.info(f"Queued share for public fetch: {item.id}")
        return item

    async def get_queue_item(self, item_id: str) -> QueueItem:
        item = await QueueItem.filter(id=item_id).first()
        if not item:
            raise QueueItemNotFoundError(item_id)
        return item

    async def list_queue(self) -> List[QueueItem]:
        return await QueueItem.all().order_by("created_at")

    async def mark_fetching(self, item: QueueItem) -> QueueItem:
        item.status = QueueStatus.FETCHING.value
        item.last_attempt_at = datetime.now()
        await item.save()
        return item

    async def mark_failed(self, item: QueueItem, error: str) -> QueueItem:
        item.status = QueueStatus.FAILED.value
        item.attempt_count += 1
        item.last_error = error
        await item.save()
        return item

    async def remove_from_queue(self, item_id: str) -> bool:
        deleted = await QueueItem.filter(id=item_id).delete()
        return deleted > 0

    # ==================== 文件 ====================

    async def list_files(self, container_id: str) -> List[MediaFile]:
        return await MediaFile.filter(container_id=container_id).order_by("name")

    async def get_file(self, file_id: str) -> MediaFile:
        media_file = await MediaFile.filter(id=file_id).first()
        if not media_file:
            raise MediaFileNotFoundError(file_id)
        return media_file

    async def replace_files(self, container: Container, items: Iterable[RemoteItem],
                            link_ttl: int) -> List[MediaFile]:
        """
        用认证拉取结果替换容器内的全部文件

        Args:
            container: 容器
            items: 远端文件列表（不含目录）
            link_ttl: 直链有效期提示（秒）
        """
        files = []
        async with in_transaction() as conn:
            await MediaFile.filter(container_id=container.id).using_db(conn).delete()
            for item in items:
                files.append(await MediaFile.create(
                    id=_new_id(),
                    container_id=container.id,
                    name=item.name,
                    path=item.path,
                    type=item.category,
                    size=item.size,
                    thumbnail=item.thumbnail,
                    download_url=item.dlink,
                    fs_id=item.fs_id,
                    md5=item.md5,
                    using_db=conn
                ))

            container.status = ContainerStatus.EXPANDED.value
            container.is_expanded = True
            container.file_count = len(files)
            container.auth_expiry = datetime.now() + timedelta(seconds=link_ttl)
            await container.save(using_db=conn)

        logger.info(f"Replaced files for container {container.id}: {len(files)} file(s)")
        return files
