from app.models.user import User
from app.models.category import Category
from app.models.document import Document

__all__ = ["User", "Category", "Document"]
