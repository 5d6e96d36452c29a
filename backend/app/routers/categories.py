from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_category_service, get_current_user
from app.schemas.category import CategoryCreate, CategoryListResponse, CategoryResponse
from app.services.category_service import CategoryService

router = APIRouter(
    prefix="/categories",
    tags=["categories"],
    dependencies=[Depends(get_current_user)],
)


@router.get("", response_model=CategoryListResponse)
async def list_categories(
    db: AsyncSession = Depends(get_db),
    service: CategoryService = Depends(get_category_service),
):
    return {"categories": await service.list_categories(db)}


@router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(
    req: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    service: CategoryService = Depends(get_category_service),
):
    return await service.create_category(db, req.name, req.color)
