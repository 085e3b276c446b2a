import pytest

from app.core.errors import ErrorKind, ExamPortalError


def test_save_and_read_certificate_pdf(storage):
    stored = storage.save_certificate_pdf("CERT-202503-PY101X-00000001", b"%PDF-1.4 body")

    assert stored.file_key.startswith("certificates/CERT-202503-PY101X-00000001-")
    assert stored.file_key.endswith(".pdf")
    assert storage.get_readable_path(stored.file_key).read_bytes() == b"%PDF-1.4 body"


def test_file_names_are_unique_per_save(storage):
    first = storage.save_certificate_pdf("CERT-1", b"a")
    second = storage.save_certificate_pdf("CERT-1", b"b")
    assert first.file_key != second.file_key


def test_unsafe_characters_are_stripped_from_file_name(storage):
    stored = storage.save_certificate_pdf("../cert/1 x", b"data")
    assert "/" not in stored.file_key[len("certificates/"):]
    assert stored.absolute_path.parent == storage.certificates_root


def test_safe_delete_is_idempotent(storage):
    stored = storage.save_certificate_pdf("CERT-2", b"data")

    storage.safe_delete(stored.file_key)
    storage.safe_delete(stored.file_key)

    assert not stored.absolute_path.exists()


def test_missing_file_is_not_found(storage):
    with pytest.raises(ExamPortalError) as exc_info:
        storage.get_readable_path("certificates/does-not-exist.pdf")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.parametrize("file_key", [
    "other/file.pdf",
    "certificates/../../etc/passwd",
    "certificates/../outside.pdf",
])
def test_keys_outside_certificates_root_are_rejected(storage, file_key):
    with pytest.raises(ExamPortalError) as exc_info:
        storage.get_readable_path(file_key)
    assert exc_info.value.kind == ErrorKind.BAD_REQUEST
