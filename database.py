# These are imports from SQLAlchemy, which is the library we use to keep the store on disk
from sqlalchemy import create_engine            # Helps connect the app to a database (SQLite by default)
from sqlalchemy.orm import sessionmaker, declarative_base   # Sessions (connections) and the base class for our tables
import os                                      # Lets us access environment variables/settings on the computer
from dotenv import load_dotenv                  # Lets us load values from a .env file

# Load environment variables (used for the database location)
load_dotenv()  # This makes sure .env file values are available

# Where the key/value store lives. Any SQLAlchemy URL works; a local SQLite file is the default.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///smartlearn.db")


def make_engine(url: str = DATABASE_URL):
    # SQLite connections are shared with the FastAPI worker thread, so the same-thread check is off
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


# Create an 'engine' object that talks to the database
engine = make_engine()

# SessionLocal opens a new database session for each read/write of a collection
SessionLocal = sessionmaker(
    bind=engine,          # Use the above engine (connection info)
    autocommit=False,     # Don't automatically save every change
    autoflush=False       # Don't flush until asked
)

# The 'Base' object is used by all our tables. Every table is a class that extends Base.
Base = declarative_base()
