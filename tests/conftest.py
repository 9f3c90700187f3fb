"""
Pytest configuration and shared fixtures
---------------------------------------
Common test fixtures and configuration for the entire test suite.
"""

import base64
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from certificates import CertificateManager
from config import ServerConfig, resolve_config
from media_server import MediaServer

TEST_USERNAME = "testuser"
TEST_PASSWORD = "testpass-long-enough"


def basic_auth_header(username: str, password: str) -> str:
    credentials = base64.b64encode(f"{username}:{password}".encode("utf-8"))
    return f"Basic {credentials.decode('utf-8')}"


@pytest.fixture(scope="session")
def temp_media_dir() -> Generator[Path, None, None]:
    """Create a temporary media directory with test files"""
    temp_dir = Path(tempfile.mkdtemp())

    (temp_dir / "test_video.mp4").write_bytes(b"0123456789" * 10)
    (temp_dir / "test_audio.MP3").write_text("fake mp3 content")
    (temp_dir / "readme.txt").write_text("not media")
    (temp_dir / ".secret.mp4").write_text("hidden file")

    subdir = temp_dir / "subdir"
    subdir.mkdir()
    (subdir / "sub_video.mkv").write_text("fake mkv content")

    hidden = temp_dir / ".hidden"
    hidden.mkdir()
    (hidden / "bar.mp4").write_text("hidden dir content")

    (temp_dir / "empty_dir").mkdir()

    yield temp_dir

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="session")
def cert_manager() -> Generator[CertificateManager, None, None]:
    """Certificate pair generated once into a temporary directory"""
    temp_dir = Path(tempfile.mkdtemp())
    manager = CertificateManager(temp_dir / "cert.pem", temp_dir / "key.pem")
    manager.generate("localhost,127.0.0.1,::1")

    yield manager

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def missing_cert_manager(tmp_path: Path) -> CertificateManager:
    """Certificate manager pointing at files that do not exist"""
    return CertificateManager(tmp_path / "cert.pem", tmp_path / "key.pem")


@pytest.fixture
def test_config(
    temp_media_dir: Path, cert_manager: CertificateManager
) -> ServerConfig:
    """Create a test configuration"""
    return resolve_config(
        user=TEST_USERNAME,
        password=TEST_PASSWORD,
        host="127.0.0.1",
        port="8443",
        path=str(temp_media_dir),
        environ={},
        certificates=cert_manager,
    )


@pytest.fixture
def test_server(
    test_config: ServerConfig, cert_manager: CertificateManager
) -> MediaServer:
    """Create a test server instance"""
    return MediaServer(test_config, cert_manager)


@pytest.fixture
def test_client(test_server: MediaServer):
    """Create a test client for the Flask app"""
    test_server.app.config["TESTING"] = True
    with test_server.app.test_client() as client:
        yield client


@pytest.fixture
def authenticated_client(test_client):
    """Create an authenticated test client"""
    test_client.environ_base["HTTP_AUTHORIZATION"] = basic_auth_header(
        TEST_USERNAME, TEST_PASSWORD
    )
    yield test_client
