from sqlalchemy import BigInteger, Column, DateTime, String, Text

from ..core.database import Base


class AssetRecord(Base):
    __tablename__ = "assets"

    id = Column(String(64), primary_key=True)
    type = Column(String(128), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    file_size = Column(BigInteger, nullable=False, default=0)
    metadata_json = Column(Text, nullable=True)
