import os
import sys
import time

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# --- path to backend ---
BASE_DIR = os.path.dirname(os.path.dirname(__file__))
BACKEND_DIR = os.path.join(BASE_DIR, "backend")
sys.path.insert(0, BACKEND_DIR)

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""
os.environ["MAIL_USERNAME"] = ""

from database import Base  # noqa: E402
import models  # noqa: E402,F401
from services.storage_service import ReceiptStorage  # noqa: E402
from storage3.utils import StorageException  # noqa: E402

SUPABASE_URL = "https://theater.supabase.co"
FIXED_NOW = 1717200000.0

# ------------------ engine ------------------
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(bind=engine)


# ------------------ fixtures ------------------
@pytest.fixture(autouse=True)
def override_db(monkeypatch):
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr("database.SessionLocal", TestingSessionLocal)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


class FakeBucket:
    def __init__(self, owner, name):
        self.owner = owner
        self.name = name

    def upload(self, path, file, file_options=None):
        self.owner.uploads.append(path)
        self.owner.options.append(file_options)
        outcome = self.owner.responses.pop(0) if self.owner.responses else "ok"
        if outcome == "timeout":
            raise httpx.ReadTimeout("timed out")
        if outcome == "slow":
            time.sleep(0.3)
        elif outcome == "exists":
            raise StorageException({"statusCode": 409, "error": "Duplicate", "message": "The resource already exists"})
        elif outcome == "error":
            raise StorageException({"statusCode": 500, "error": "Internal", "message": "boom"})
        return {"Key": f"{self.name}/{path}"}

    def get_public_url(self, path):
        return f"{SUPABASE_URL}/storage/v1/object/public/{self.name}/{path}"

    def remove(self, paths):
        self.owner.deleted.extend(paths)
        return []


class FakeStorageClient:
    def __init__(self, owner):
        self.owner = owner

    def from_(self, bucket):
        return FakeBucket(self.owner, bucket)


class FakeSupabase:
    """Stands in for the Supabase client; `responses` is consumed one item per upload."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.uploads = []
        self.options = []
        self.deleted = []
        self.sleeps = []
        self.storage_client = FakeStorageClient(self)

    @property
    def storage(self):
        return self.storage_client

    async def sleep(self, seconds):
        self.sleeps.append(seconds)

    def receipt_storage(self, **kwargs) -> ReceiptStorage:
        return ReceiptStorage(
            SUPABASE_URL,
            "service-key",
            client=self,
            sleep=self.sleep,
            clock=lambda: FIXED_NOW,
            **kwargs,
        )


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def make_supabase():
    return FakeSupabase


@pytest.fixture
def session_factory():
    return TestingSessionLocal
