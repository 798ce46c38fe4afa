# Import Base and engine from the database setup (defined in database.py)
from database import Base, engine, DATABASE_URL

# Import all database models so SQLAlchemy knows what tables to create
import models  # noqa: F401  registers StorageEntry on Base.metadata

# This function creates the key/value table the store persists into
def create_tables(bind=engine):
    print(f"📢 Creating tables in {DATABASE_URL}...")   # Print a message to show what's happening
    Base.metadata.create_all(bind=bind)                # Actually create all tables in the database!
    print("✅ All tables created successfully!")        # Print success message when done

# If you run this file directly (not by importing it), then create all tables immediately!
if __name__ == "__main__":
    create_tables()
