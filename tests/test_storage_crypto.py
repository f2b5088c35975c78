import pytest

from app.flock.crypto import (
    EncryptionNotConfigured,
    decrypt_secret,
    encrypt_secret,
    generate_key_hex,
    is_encryption_configured,
)
from app.flock.storage import LocalStorage, S3Storage, StorageError, bulletin_pdf_key, storage_from_config

KEY = "ab" * 32


def test_local_storage_put_get(tmp_path):
    st = LocalStorage(root=tmp_path)
    key = bulletin_pdf_key("t-1", 7, "booklet")
    assert key == "bulletins/t-1/7/booklet.pdf"
    st.put_bytes(key, b"%PDF-1.4", content_type="application/pdf")
    assert st.exists(key)
    assert st.get_bytes("/" + key) == b"%PDF-1.4"
    with pytest.raises(StorageError):
        st.get_bytes("bulletins/missing.pdf")


def test_local_storage_rejects_traversal(tmp_path):
    st = LocalStorage(root=tmp_path)
    with pytest.raises(StorageError):
        st.put_bytes("../escape.pdf", b"x")
    with pytest.raises(StorageError):
        st.exists("")


def test_storage_from_config(tmp_path):
    assert isinstance(storage_from_config({"STORAGE_BACKEND": "local", "STORAGE_LOCAL_ROOT": str(tmp_path)}), LocalStorage)
    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": "files", "S3_ENDPOINT": "nyc3.example.com"})
    assert isinstance(s3, S3Storage)
    assert s3.region == "nyc3"
    assert s3.bucket == "files"


def test_encrypt_round_trip_uses_fresh_iv():
    a = encrypt_secret("sk-test-123", KEY)
    b = encrypt_secret("sk-test-123", KEY)
    assert a != b
    assert decrypt_secret(a, KEY) == "sk-test-123"


def test_decrypt_with_wrong_key_fails():
    token = encrypt_secret("sk-test-123", KEY)
    with pytest.raises(ValueError):
        decrypt_secret(token, "cd" * 32)
    with pytest.raises(ValueError):
        decrypt_secret("not base64!", KEY)


def test_key_validation(monkeypatch):
    monkeypatch.delenv("APP_ENCRYPTION_KEY", raising=False)
    assert not is_encryption_configured()
    assert not is_encryption_configured("abc")
    assert not is_encryption_configured("zz" * 32)
    assert is_encryption_configured(generate_key_hex())
    with pytest.raises(EncryptionNotConfigured):
        encrypt_secret("x")
