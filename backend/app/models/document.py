from sqlalchemy import Column, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import relationship
from app.database import Base


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_user_uploaded", "user_id", "uploaded_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    file_type = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False)
    s3_key = Column(Text, nullable=False, unique=True)
    s3_url = Column(Text, nullable=False)
    uploaded_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    user = relationship("User", back_populates="documents")
    category = relationship("Category", back_populates="documents")
