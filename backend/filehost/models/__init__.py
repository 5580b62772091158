"""Import all models so SQLAlchemy metadata knows about them."""
from filehost.models.base import Base
from filehost.models.file_record import FileRecord

__all__ = ["Base", "FileRecord"]
