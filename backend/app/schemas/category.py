from pydantic import Field

from app.schemas.base import CamelModel


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1)
    color: str | None = Field(None, pattern=r"^#(?:[0-9a-fA-F]{3}){1,2}$")


class CategoryResponse(CamelModel):
    id: int
    name: str
    color: str | None


class CategoryListResponse(CamelModel):
    categories: list[CategoryResponse]
