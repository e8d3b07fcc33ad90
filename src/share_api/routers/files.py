import mimetypes
from typing import BinaryIO, Iterator, List, Optional
from urllib.parse import quote

from fastapi import (
    APIRouter,
    File,
    Path,
    Request,
    UploadFile,
    status
)
from fastapi.responses import JSONResponse, StreamingResponse

from share_api.gateway import SessionGateway
from share_api.schemas import (
    DeleteResponse,
    ErrorResponse,
    FileRecord,
    UploadResponse,
)

DOWNLOAD_CHUNK_SIZE = 64 * 1024

router = APIRouter()


def get_gateway(request: Request) -> SessionGateway:
    return request.app.state.gateway


def iter_stream(stream: BinaryIO, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield a file in chunks and close it once exhausted or abandoned."""
    with stream:
        for chunk in iter(lambda: stream.read(chunk_size), b""):
            yield chunk


def content_disposition(display_name: str) -> str:
    """`attachment` header carrying the original name, with an ASCII fallback for old clients."""
    ascii_name = display_name.encode("ascii", "ignore").decode("ascii").replace('"', "").strip()
    header = f'attachment; filename="{ascii_name or "download"}"'
    if ascii_name != display_name:
        header += f"; filename*=UTF-8''{quote(display_name)}"
    return header


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None, description="The file to share"),
):
    """
    Store an uploaded file and notify every connected session.

    Returns:
        UploadResponse: The record of the stored file
    """
    if file is None or not file.filename:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "No file"})

    try:
        record = await get_gateway(request).handle_upload(file.filename, file.file)
    finally:
        await file.close()
    return UploadResponse(file=record)


@router.get("/files", response_model=List[FileRecord])
async def list_files(request: Request):
    """
    List every shared file, newest first.

    An unreadable upload directory yields an empty list rather than an error.
    """
    return await get_gateway(request).handle_list()


@router.delete(
    "/file/{storage_key}",
    response_model=DeleteResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def delete_file(
    request: Request,
    storage_key: str = Path(..., description="The storage key of the file to delete"),
):
    """Delete a shared file and notify every connected session."""
    await get_gateway(request).handle_delete(storage_key)
    return DeleteResponse()


@router.get(
    "/uploads/{storage_key}",
    response_class=StreamingResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    },
)
async def download_file(
    request: Request,
    storage_key: str = Path(..., description="The storage key of the file to download"),
):
    """
    Download a stored file.

    Returns:
        StreamingResponse: The file content as a stream
    """
    record, stream = await get_gateway(request).handle_download(storage_key)
    media_type, _ = mimetypes.guess_type(record.display_name)
    return StreamingResponse(
        iter_stream(stream),
        media_type=media_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(record.display_name),
            "Content-Length": str(record.size_bytes),
        },
    )
