"""
Pytest configuration and shared fixtures for the Frameport backend tests
"""

import io
import sys
from pathlib import Path

import boto3
import pytest
from botocore.client import Config as BotoConfig
from PIL import Image

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

TEST_BUCKET = "frameport-test"
TEST_ENDPOINT = "https://testaccount.r2.cloudflarestorage.com"


@pytest.fixture
def local_storage(tmp_path, monkeypatch):
    """Storage without R2 credentials: objects live under a temp static dir"""
    import utils.storage as storage

    monkeypatch.setattr(storage, "s3", None)
    monkeypatch.setattr(storage, "s3_presign_client", None)
    monkeypatch.setattr(storage, "R2_BUCKET", "")
    monkeypatch.setattr(storage, "STATIC_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def r2(monkeypatch):
    """A real boto3 resource with dummy credentials; presigning works offline"""
    import utils.storage as storage

    resource = boto3.resource(
        "s3",
        endpoint_url=TEST_ENDPOINT,
        aws_access_key_id="test-access-key",
        aws_secret_access_key="test-secret-key",
        config=BotoConfig(signature_version="s3v4"),
        region_name="auto",
    )
    monkeypatch.setattr(storage, "s3", resource)
    monkeypatch.setattr(storage, "s3_presign_client", None)
    monkeypatch.setattr(storage, "R2_BUCKET", TEST_BUCKET)
    return resource


@pytest.fixture
def make_images():
    """Factory for ordered ImageRecord lists"""
    from models.gallery import ImageRecord

    def _make(count, start_id=100):
        return [
            ImageRecord(
                id=start_id + i,
                width=1200,
                height=800,
                url=f"https://cdn.example.test/photo-{i}.jpg",
                format="jpg",
                key=f"galleries/g1/photo-{i}.jpg",
                title=f"Photo {i}",
            )
            for i in range(count)
        ]

    return _make


@pytest.fixture
def png_bytes():
    """A 2000x1000 PNG, large enough to be downscaled for both variants"""
    buf = io.BytesIO()
    Image.new("RGB", (2000, 1000), (120, 100, 90)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def client(local_storage, monkeypatch):
    """API client against local storage with the API token check disabled"""
    from fastapi.testclient import TestClient
    import core.auth
    from main import app

    monkeypatch.setattr(core.auth, "FRAMEPORT_API_TOKEN", "")
    with TestClient(app) as c:
        yield c
