"""Tests for file storage backends."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from attest_api.errors import StorageError
from attest_api.storage.service import LocalStorage, MinioStorage, StorageRef, build_object_key


def test_object_key_layout():
    key = build_object_key("My Report (v2).pdf", tenant_id=3, now=datetime(2024, 5, 1))
    prefix, name = key.rsplit("/", 1)
    assert prefix == "tenants/3/2024/05"
    assert name.endswith("-My-Report-v2-.pdf")
    assert build_object_key("../../x.pdf").startswith("shared/")
    assert ".." not in build_object_key("../../x.pdf")


class TestLocalStorage:
    def test_store_and_remove(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        ref = storage.store(b"hello", "notes.txt", content_type="text/plain", tenant_id=1)

        assert (tmp_path / ref.key).read_bytes() == b"hello"
        assert ref.size == 5
        assert ref.to_dict()["hash"].startswith("sha256:")

        assert storage.remove(ref) is True
        assert storage.remove(ref) is False

    def test_refuses_keys_outside_root(self, tmp_path):
        storage = LocalStorage(str(tmp_path / "root"))
        ref = StorageRef(key="../escape.txt", filename="escape.txt", size=0, content_type="", sha256="")
        with pytest.raises(StorageError):
            storage.remove(ref)


class TestMinioStorage:
    def _storage(self, client):
        return MinioStorage(client=client, bucket="attested-pdfs")

    def test_store_creates_bucket_once(self):
        client = MagicMock()
        client.bucket_exists.return_value = False
        storage = self._storage(client)

        storage.store(b"%PDF-1.4", "a.pdf", content_type="application/pdf", tenant_id=1)
        storage.store(b"%PDF-1.4", "b.pdf", content_type="application/pdf", tenant_id=1)

        client.make_bucket.assert_called_once_with("attested-pdfs")
        assert client.put_object.call_count == 2

    def test_unreachable_endpoint_becomes_storage_error(self):
        client = MagicMock()
        client.bucket_exists.side_effect = ConnectionError("refused")
        with pytest.raises(StorageError) as exc_info:
            self._storage(client).store(b"x", "a.pdf")
        assert exc_info.value.code == "file_storage_unavailable"
        assert self._storage(client).ping() is False
