from app.schemas.base import CamelModel
from app.schemas.category import CategoryResponse


class DocumentResponse(CamelModel):
    id: int
    user_id: int
    category_id: int
    name: str
    description: str | None
    file_type: str
    file_size: int
    s3_key: str
    s3_url: str
    uploaded_at: str
    updated_at: str
    category: CategoryResponse | None = None


class DocumentUploadResponse(CamelModel):
    document_id: int
    s3_url: str
    name: str
    category: CategoryResponse | None


class DocumentUpdate(CamelModel):
    name: str | None = None
    category_id: int | None = None
    description: str | None = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DocumentListResponse(CamelModel):
    data: list[DocumentResponse]
    pagination: Pagination


class DownloadUrlResponse(CamelModel):
    download_url: str
