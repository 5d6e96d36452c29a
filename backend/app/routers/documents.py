from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import CurrentUser, get_current_user, get_document_service
from app.schemas.document import (
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdate,
    DocumentUploadResponse,
    DownloadUrlResponse,
)
from app.services.document_service import DocumentService
from app.utils.errors import BadRequestError, ValidationError
from app.utils.file_validation import is_valid_file_type

router = APIRouter(prefix="/documents", tags=["documents"])


async def _read_upload(file: UploadFile) -> bytes:
    if not is_valid_file_type(file.content_type):
        raise BadRequestError(
            "Invalid file type. Only PDF, DOC, DOCX, TXT, PNG, JPG, JPEG are allowed.",
            code="INVALID_FILE_TYPE",
        )

    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise BadRequestError(f"File too large (max {max_bytes} bytes)", code="FILE_TOO_LARGE")
        chunks.append(chunk)

    content = b"".join(chunks)
    if not content:
        raise BadRequestError("Empty file")
    return content


@router.post("/upload", response_model=DocumentUploadResponse, status_code=201)
async def upload_document(
    file: UploadFile | None = File(None),
    name: str | None = Form(None),
    category_id: int | None = Form(None, alias="categoryId"),
    description: str | None = Form(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    if file is None:
        raise BadRequestError("No file uploaded")

    missing = []
    if not name:
        missing.append({"field": "name", "message": "Document name is required"})
    if not category_id:
        missing.append({"field": "categoryId", "message": "Category is required"})
    if missing:
        raise ValidationError(details=missing)

    content = await _read_upload(file)
    document = await service.upload_document(
        db,
        user_id=user.id,
        content=content,
        filename=file.filename or "upload",
        content_type=file.content_type,
        name=name,
        category_id=category_id,
        description=description,
    )
    return DocumentUploadResponse(
        document_id=document["id"],
        s3_url=document["s3_url"],
        name=document["name"],
        category=document["category"],
    )


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: int | None = None,
    search: str | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    return await service.list_documents(db, user.id, page=page, limit=limit, category=category, search=search)


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    return await service.get_document(db, document_id, user.id)


@router.put("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: int,
    req: DocumentUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    return await service.update_document(db, document_id, user.id, req)


@router.delete("/{document_id}")
async def delete_document(
    document_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    await service.delete_document(db, document_id, user.id)
    return {"message": "Document deleted successfully"}


@router.get("/{document_id}/download", response_model=DownloadUrlResponse)
async def download_document(
    document_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    return DownloadUrlResponse(download_url=await service.get_download_url(db, document_id, user.id))
