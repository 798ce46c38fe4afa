# Imports for building database tables using SQLAlchemy
from sqlalchemy import (
    Column,        # Lets us define a "column" in each table
    String,        # Used for short text (like collection names)
    Text,          # Used for longer text (the JSON snapshot of a collection)
    DateTime,      # Used for storing when a row was last written
)
from database import Base                # Every table is based on this "Base" class
from datetime import datetime            # Used to stamp each write

# =======================
# Storage Entry Table
# =======================

class StorageEntry(Base):  # One row per named collection ("users", "courses", ...)
    __tablename__ = "storage_entries"  # The actual name of the table inside the database

    key = Column(String(64), primary_key=True)  # Collection name, e.g. "submissions"
    value = Column(Text, nullable=False)  # JSON text of the whole collection
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)  # When it was last saved
