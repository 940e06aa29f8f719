import pytest

import studyforge.utils.file_handler as fh_mod
from studyforge.utils.file_handler import S3Storage, StorageError
from tests.fixtures.mock_aws import FailingS3Client, MockS3Client

pytestmark = pytest.mark.unit


def test_put_uploads_and_returns_url(monkeypatch):
    monkeypatch.setattr(fh_mod, 'S3_PUBLIC_BASE_URL', None)
    monkeypatch.setattr(fh_mod, 'AWS_REGION', 'sa-east-1')
    client = MockS3Client()
    storage = S3Storage(bucket='notes', client=client)

    url = storage.put('docs/1/123-my notes.pdf', b'%PDF', 'application/pdf')

    assert url == 'https://notes.s3.sa-east-1.amazonaws.com/docs/1/123-my%20notes.pdf'
    assert client.objects[('notes', 'docs/1/123-my notes.pdf')] == {'Body': b'%PDF', 'ContentType': 'application/pdf'}


def test_public_base_url(monkeypatch):
    monkeypatch.setattr(fh_mod, 'S3_PUBLIC_BASE_URL', 'https://cdn.example.com/')
    storage = S3Storage(bucket='notes', client=MockS3Client())
    assert storage.put('docs/a.png', b'x', 'image/png') == 'https://cdn.example.com/docs/a.png'


def test_client_errors_become_storage_errors():
    storage = S3Storage(bucket='notes', client=FailingS3Client())
    with pytest.raises(StorageError):
        storage.put('docs/a.png', b'x', 'image/png')


def test_missing_bucket(monkeypatch):
    monkeypatch.setattr(fh_mod, 'AWS_S3_BUCKET', None)
    storage = S3Storage(client=MockS3Client())
    with pytest.raises(StorageError):
        storage.put('docs/a.png', b'x', 'image/png')
