"""
SQLAlchemy ORM Models
Tables of the local catalog replica.
"""

from sqlalchemy import Column, String, Integer, Float, Boolean, Text, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CatalogRecordRow(Base):
    """
    Replica row for one reference record.

    Rows are only ever written by a full-replace sync.
    """
    __tablename__ = 'catalog_records'

    id = Column(String(64), primary_key=True)
    position = Column(Integer, nullable=False,
                      comment='Order in the remote payload; defines storage order')

    name = Column(Text, nullable=False, server_default='')
    sku = Column(String(255), nullable=True)
    unit = Column(String(64), nullable=True)
    price = Column(Float, nullable=True)
    category = Column(String(255), nullable=True)
    category_full_path = Column(Text, nullable=True,
                                comment='Hierarchical category path, e.g. "Сухие смеси / Цемент"')
    supplier = Column(String(255), nullable=True)
    image = Column(Text, nullable=True)
    is_global = Column(Boolean, nullable=False, server_default='0')

    search_blob = Column(Text, nullable=False, server_default='',
                         comment='Lowercase name/sku/supplier/category')

    __table_args__ = (
        Index('idx_catalog_records_name', 'name'),
        Index('idx_catalog_records_sku', 'sku'),
        Index('idx_catalog_records_category', 'category'),
        Index('idx_catalog_records_position', 'position'),
    )

    def __repr__(self):
        return f"<CatalogRecordRow(id={self.id}, name={self.name!r})>"


class SyncMetadata(Base):
    """
    Small key/value metadata slot (sync marker lives here).
    """
    __tablename__ = 'sync_metadata'

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=True)

    def __repr__(self):
        return f"<SyncMetadata(key={self.key}, value={self.value})>"
