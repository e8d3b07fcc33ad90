import os
import re
from urllib.parse import quote

from fastapi import status
from fastapi.testclient import TestClient

from tests.consts import (
    STORAGE_KEY_PATTERN,
    TEST_FILE_CONTENT,
    TEST_FILE_CONTENT_TYPE,
    TEST_FILE_NAME,
    TEST_PDF_CONTENT,
    TEST_PDF_CONTENT_TYPE,
    TEST_PDF_NAME,
)


def upload(client: TestClient, name: str = TEST_FILE_NAME, content: bytes = TEST_FILE_CONTENT,
           content_type: str = TEST_FILE_CONTENT_TYPE):
    return client.post("/upload", files={"file": (name, content, content_type)})


def test__upload_file__happy_path(client: TestClient):
    response = upload(client, TEST_PDF_NAME, TEST_PDF_CONTENT, TEST_PDF_CONTENT_TYPE)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["success"] is True
    file = data["file"]
    assert re.match(STORAGE_KEY_PATTERN, file["storageKey"])
    assert file["storageKey"].endswith(".pdf")
    assert file["displayName"] == TEST_PDF_NAME
    assert file["sizeBytes"] == 37888
    assert file["size"] == "37.00 KB"
    assert file["path"] == f"/uploads/{file['storageKey']}"
    assert "createdAt" in file


def test_list_files_after_upload(client: TestClient):
    storage_key = upload(client).json()["file"]["storageKey"]

    response = client.get("/files")

    assert response.status_code == status.HTTP_200_OK
    files = response.json()
    assert len(files) == 1
    assert files[0]["storageKey"] == storage_key
    assert files[0]["displayName"] == TEST_FILE_NAME
    assert files[0]["sizeBytes"] == len(TEST_FILE_CONTENT)


def test_list_files_newest_first(client: TestClient, upload_dir):
    first = upload(client, "first.txt").json()["file"]["storageKey"]
    second = upload(client, "second.txt").json()["file"]["storageKey"]
    os.utime(upload_dir / first, (1_700_000_100, 1_700_000_100))
    os.utime(upload_dir / second, (1_700_000_000, 1_700_000_000))

    names = [f["displayName"] for f in client.get("/files").json()]

    assert names == ["first.txt", "second.txt"]


def test_same_name_uploads_are_kept_apart(client: TestClient):
    keys = {upload(client, "photo.jpg", b"jpeg", "image/jpeg").json()["file"]["storageKey"] for _ in range(2)}

    files = client.get("/files").json()

    assert len(keys) == 2
    assert {f["storageKey"] for f in files} == keys
    assert [f["displayName"] for f in files] == ["photo.jpg", "photo.jpg"]


def test_get_file(client: TestClient):
    storage_key = upload(client).json()["file"]["storageKey"]

    response = client.get(f"/uploads/{storage_key}")

    assert response.status_code == status.HTTP_200_OK
    assert response.content == TEST_FILE_CONTENT
    assert response.headers["Content-Type"].startswith(TEST_FILE_CONTENT_TYPE)
    assert response.headers["Content-Disposition"] == f'attachment; filename="{TEST_FILE_NAME}"'


def test_get_file_with_non_ascii_name(client: TestClient):
    storage_key = upload(client, "résumé.txt").json()["file"]["storageKey"]

    response = client.get(f"/uploads/{storage_key}")

    assert response.status_code == status.HTTP_200_OK
    assert "filename*=UTF-8''r%C3%A9sum%C3%A9.txt" in response.headers["Content-Disposition"]


def test_delete_file(client: TestClient):
    storage_key = upload(client).json()["file"]["storageKey"]

    response = client.delete(f"/file/{storage_key}")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True}

    # the file should not be found if it was deleted
    response = client.get(f"/uploads/{storage_key}")
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/files").json() == []


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "ok"
    assert data["ready"] is True
    assert data["sessions"] == 0


def test_hand_copied_file_can_be_listed_downloaded_and_deleted(client: TestClient, upload_dir):
    (upload_dir / "holiday photo (1).jpg").write_bytes(b"jpeg")
    (upload_dir / "notes..txt").write_bytes(b"unreachable")

    files = client.get("/files").json()
    assert [(f["storageKey"], f["displayName"]) for f in files] == [("holiday photo (1).jpg", "holiday photo (1).jpg")]

    url = f"/uploads/{quote(files[0]['storageKey'])}"
    response = client.get(url)
    assert response.status_code == status.HTTP_200_OK
    assert response.content == b"jpeg"

    response = client.delete(f"/file/{quote(files[0]['storageKey'])}")
    assert response.status_code == status.HTTP_200_OK
    assert client.get(url).status_code == status.HTTP_404_NOT_FOUND
