# tests/helpers.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


def iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class FixedClock:
    """Settable stand-in for the app clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def signup(
    client: TestClient,
    email: str = "ada@example.com",
    password: str = "secret1",
) -> dict:
    resp = client.post(
        "/api/auth/signup",
        json={"email": email, "password": password, "confirmPassword": password},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class FakeBlobService:
    """
    In-memory stand-in for azure.storage.blob.BlobServiceClient.

    Blobs live in `blobs`, keyed by (container, blob name).
    """

    def __init__(self) -> None:
        self.blobs: dict = {}
        self.connection_strings: list = []

    def from_connection_string(self, conn_str: str) -> "FakeBlobService":
        self.connection_strings.append(conn_str)
        return self

    def get_blob_client(self, container: str, blob: str) -> "_FakeBlobClient":
        return _FakeBlobClient(self.blobs, (container, blob))


class _FakeBlobClient:
    def __init__(self, blobs: dict, key: tuple) -> None:
        self._blobs = blobs
        self._key = key

    def upload_blob(self, data: bytes, overwrite: bool = False) -> None:
        if self._key in self._blobs and not overwrite:
            raise FileExistsError(self._key)
        self._blobs[self._key] = bytes(data)

    def download_blob(self) -> "_FakeDownload":
        return _FakeDownload(self._blobs[self._key])


class _FakeDownload:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def readall(self) -> bytes:
        return self._data
