"""
Persistence package: SQLAlchemy models plus the global DBStorage instance.
"""
from models.db_storage import DBStorage

storage = DBStorage()
storage.reload()
