"""
媒体库 API 路由

容器 / 公开拉取队列 / 文件，以及公开拉取和认证拉取
"""
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from mediavault.api.deps import (
    get_library_service, get_metadata_service, get_settings_dep, get_token_service
)
from mediavault.api.schemas import ContainerCreate, DataResponse, ResponseBase, ShareUrlCreate
from mediavault.core.config import Settings
from mediavault.core.exceptions import QueueItemNotFoundError, RemoteError, UnexpectedResponseError
from mediavault.services.library_service import LibraryService
from mediavault.services.metadata_service import MetadataService
from mediavault.services.token_service import TokenService, token_to_auth_data

logger = logging.getLogger(__name__)
router = APIRouter(tags=["媒体库"])


def _fetch_failed(message: str, error: RemoteError, **extra) -> JSONResponse:
    """拉取失败响应"""
    content = {
        "success": False,
        "message": message,
        "details": error.to_dict(),
        "needs_auth": isinstance(error, UnexpectedResponseError),
    }
    content.update(extra)
    return JSONResponse(status_code=error.status_code, content=content)


# ==================== 容器 ====================

@router.get("/containers")
async def list_containers(
    library: LibraryService = Depends(get_library_service)
):
    """获取容器列表"""
    containers = await library.list_containers()
    return {
        "success": True,
        "containers": [c.to_dict() for c in containers]
    }


@router.post("/containers", status_code=status.HTTP_201_CREATED)
async def create_container(
    data: ContainerCreate,
    library: LibraryService = Depends(get_library_service)
):
    """直接创建容器（不做公开拉取）"""
    container = await library.create_container(data.url, title=data.title)
    return {"success": True, "container": container.to_dict()}


@router.get("/containers/{container_id}", response_model=DataResponse)
async def get_container(
    container_id: str,
    library: LibraryService = Depends(get_library_service)
):
    """获取容器"""
    container = await library.get_container(container_id)
    return DataResponse(data=container.to_dict())


@router.get("/containers/{container_id}/files")
async def list_container_files(
    container_id: str,
    library: LibraryService = Depends(get_library_service)
):
    """获取容器内文件"""
    await library.get_container(container_id)
    files = await library.list_files(container_id)
    return {
        "success": True,
        "files": [f.to_dict() for f in files],
        "total": len(files)
    }


@router.post("/containers/{container_id}/public-fetch")
async def container_public_fetch(
    container_id: str,
    library: LibraryService = Depends(get_library_service),
    metadata: MetadataService = Depends(get_metadata_service)
):
    """对已有容器重新执行公开拉取"""
    container = await library.get_container(container_id)

    result = await metadata.fetch_public(container.url)
    if not result.success:
        return _fetch_failed("公开拉取失败", result.error)

    container = await library.apply_public_metadata(
        container,
        title=result.title,
        thumbnail=result.thumbnail,
        type=result.type,
        file_count=result.file_count
    )
    return {"success": True, "container": container.to_dict()}


@router.post("/containers/{container_id}/auth-fetch")
async def container_auth_fetch(
    container_id: str,
    library: LibraryService = Depends(get_library_service),
    tokens: TokenService = Depends(get_token_service),
    metadata: MetadataService = Depends(get_metadata_service),
    settings: Settings = Depends(get_settings_dep)
):
    """
    认证拉取

    需要已捕获的 active Token；成功后用带直链的文件列表替换容器内文件
    """
    token = await tokens.get_active()
    if not token:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={
                "success": False,
                "message": "没有可用的认证 Token，请先完成认证捕获",
                "needs_auth": True
            }
        )

    container = await library.get_container(container_id)

    result = await metadata.fetch_authenticated(container.url, token_to_auth_data(token))
    if not result.success:
        return _fetch_failed("认证拉取失败", result.error)

    await tokens.touch(token)
    files = await library.replace_files(container, result.items, settings.gateway.cache_ttl)

    return {
        "success": True,
        "container": container.to_dict(),
        "files": [f.to_dict() for f in files],
        "count": result.count
    }


# ==================== 公开拉取队列 ====================

@router.get("/queue")
async def list_queue(
    library: LibraryService = Depends(get_library_service)
):
    """获取队列"""
    items = await library.list_queue()
    return {"success": True, "items": [i.to_dict() for i in items], "total": len(items)}


@router.post("/queue", status_code=status.HTTP_201_CREATED)
async def add_to_queue(
    data: ShareUrlCreate,
    library: LibraryService = Depends(get_library_service)
):
    """加入公开拉取队列"""
    item = await library.add_to_queue(data.url)
    return {"success": True, "item": item.to_dict()}


@router.delete("/queue/{item_id}", response_model=ResponseBase)
async def remove_from_queue(
    item_id: str,
    library: LibraryService = Depends(get_library_service)
):
    """移出队列"""
    if not await library.remove_from_queue(item_id):
        raise QueueItemNotFoundError(item_id)
    return ResponseBase(message="已移出队列")


@router.post("/queue/{item_id}/public-fetch")
async def queue_public_fetch(
    item_id: str,
    library: LibraryService = Depends(get_library_service),
    metadata: MetadataService = Depends(get_metadata_service)
):
    """
    对队列项执行公开拉取

    成功时创建容器并移出队列；失败时记录错误和尝试次数
    """
    item = await library.get_queue_item(item_id)
    await library.mark_fetching(item)

    result = await metadata.fetch_public(item.url)
    if not result.success:
        item = await library.mark_failed(item, result.error.message)
        return _fetch_failed("公开拉取失败", result.error, queue_item=item.to_dict())

    container = await library.create_container(
        item.url,
        title=result.title,
        thumbnail=result.thumbnail,
        type=result.type,
        file_count=result.file_count
    )
    await library.remove_from_queue(item_id)

    return {"success": True, "container": container.to_dict()}
