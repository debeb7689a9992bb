"""Tests for the Spaces uploader, using an in-memory client."""
import threading

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from fractal_fixtures.errors import ConfigurationError, TransportError
from fractal_fixtures.io.config import StorageConfig
from fractal_fixtures.io.storage import SpacesUploader, content_type_for


def client_error(code, status):
    return ClientError({'Error': {'Code': code, 'Message': code},
                        'ResponseMetadata': {'HTTPStatusCode': status}}, 'PutObject')


class FakeClient:
    """Records uploads; ``errors`` maps object keys to exceptions raised in order."""

    def __init__(self, errors=None):
        self.errors = {key: list(values) for key, values in (errors or {}).items()}
        self.calls = []
        self.objects = {}
        self._lock = threading.Lock()

    def put_object(self, Bucket, Key, Body, ACL, ContentType):
        with self._lock:
            self.calls.append({'Bucket': Bucket, 'Key': Key, 'ACL': ACL, 'ContentType': ContentType})
            pending = self.errors.get(Key)
            if pending:
                raise pending.pop(0)
            self.objects[Key] = Body.read()
        return {'ETag': '"etag"'}


@pytest.fixture
def storage_config():
    return StorageConfig('key', 'secret', 'fixtures', 'nyc3', prefix='fractals/', upload_retries=3)


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / 'fractal_a.png'
    path.write_bytes(b"\x89PNG fake")
    return path


def make_uploader(config, client):
    sleeps = []
    return SpacesUploader(config, client=client, sleep=sleeps.append), sleeps


class TestUrls:

    def test_urls_include_prefix(self, storage_config):
        uploader, _ = make_uploader(storage_config, FakeClient())
        assert uploader.cdn_url('a.png') == \
            'https://fixtures.nyc3.cdn.digitaloceanspaces.com/fractals/a.png'
        assert uploader.origin_url('a.png') == \
            'https://fixtures.nyc3.digitaloceanspaces.com/fractals/a.png'

    @pytest.mark.parametrize("name, expected", [
        ('a.png', 'image/png'),
        ('a.JPG', 'image/jpeg'),
        ('a.jpeg', 'image/jpeg'),
        ('a.gif', 'image/gif'),
        ('a.webp', 'image/webp'),
        ('a.bin', 'application/octet-stream'),
    ])
    def test_content_types(self, name, expected):
        assert content_type_for(name) == expected


class TestUpload:

    def test_successful_upload(self, storage_config, image_file):
        client = FakeClient()
        uploader, sleeps = make_uploader(storage_config, client)

        cdn_url, origin_url = uploader.upload(image_file, image_file.name)

        assert cdn_url.endswith('/fractals/fractal_a.png')
        assert origin_url.startswith('https://fixtures.nyc3.digitaloceanspaces.com/')
        assert client.calls == [{'Bucket': 'fixtures', 'Key': 'fractals/fractal_a.png',
                                 'ACL': 'public-read', 'ContentType': 'image/png'}]
        assert client.objects['fractals/fractal_a.png'] == b"\x89PNG fake"
        assert sleeps == []

    def test_transient_errors_are_retried(self, storage_config, image_file):
        client = FakeClient({'fractals/fractal_a.png': [
            EndpointConnectionError(endpoint_url='https://nyc3.digitaloceanspaces.com'),
            client_error('SlowDown', 503),
        ]})
        uploader, sleeps = make_uploader(storage_config, client)

        uploader.upload(image_file, image_file.name)

        assert len(client.calls) == 3
        assert sleeps == [0.5, 1.0]

    def test_retries_exhausted(self, storage_config, image_file):
        client = FakeClient({'fractals/fractal_a.png': [client_error('InternalError', 500)] * 3})
        uploader, sleeps = make_uploader(storage_config, client)

        with pytest.raises(TransportError) as exc_info:
            uploader.upload(image_file, image_file.name)

        assert exc_info.value.attempts == 3
        assert len(client.calls) == 3
        assert sleeps == [0.5, 1.0]

    @pytest.mark.parametrize("error", [
        client_error('AccessDenied', 403),
        client_error('InvalidAccessKeyId', 403),
        client_error('NoSuchBucket', 404),
        client_error('SignatureDoesNotMatch', 403),
        NoCredentialsError(),
    ])
    def test_auth_errors_are_fatal(self, storage_config, image_file, error):
        client = FakeClient({'fractals/fractal_a.png': [error]})
        uploader, sleeps = make_uploader(storage_config, client)

        with pytest.raises(ConfigurationError):
            uploader.upload(image_file, image_file.name)

        assert len(client.calls) == 1
        assert sleeps == []

    def test_client_errors_are_not_retried(self, storage_config, image_file):
        client = FakeClient({'fractals/fractal_a.png': [client_error('InvalidArgument', 400)]})
        uploader, sleeps = make_uploader(storage_config, client)

        with pytest.raises(TransportError):
            uploader.upload(image_file, image_file.name)

        assert len(client.calls) == 1

    def test_key_defaults_to_file_name(self, storage_config, image_file):
        client = FakeClient()
        uploader, _ = make_uploader(storage_config, client)

        cdn_url, origin_url = uploader.upload(image_file)

        assert cdn_url.endswith('/fractals/fractal_a.png')
        assert origin_url.endswith('/fractals/fractal_a.png')
        assert list(client.objects) == ['fractals/fractal_a.png']

    def test_unreadable_file_is_transport_error(self, storage_config, tmp_path):
        client = FakeClient()
        uploader, sleeps = make_uploader(storage_config, client)

        with pytest.raises(TransportError):
            uploader.upload(tmp_path / 'gone.png')

        assert client.calls == []
        assert sleeps == []


class TestUploadFolder:

    @pytest.fixture
    def folder(self, tmp_path):
        folder = tmp_path / 'images'
        (folder / 'nested').mkdir(parents=True)
        (folder / 'b.png').write_bytes(b"b" * 10)
        (folder / 'a.png').write_bytes(b"a" * 20)
        (folder / 'nested' / 'c.jpg').write_bytes(b"c" * 30)
        (folder / 'd.png.tmp').write_bytes(b"partial")
        return folder

    def test_uploads_all_files(self, storage_config, folder):
        client = FakeClient()
        uploader, _ = make_uploader(storage_config, client)

        report = uploader.upload_folder(folder, max_workers=2)

        assert [row.file_name for row in report.rows] == ['a.png', 'b.png', 'nested/c.jpg']
        assert [row.file_size_bytes for row in report.rows] == [20, 10, 30]
        assert report.rows[2].cdn_url == \
            'https://fixtures.nyc3.cdn.digitaloceanspaces.com/fractals/nested/c.jpg'
        assert report.failures == []
        assert 'fractals/d.png.tmp' not in client.objects

    def test_failures_are_reported(self, storage_config, folder):
        client = FakeClient({'fractals/b.png': [client_error('InternalError', 500)] * 3})
        uploader, _ = make_uploader(storage_config, client)

        report = uploader.upload_folder(folder)

        assert report.succeeded == 2
        assert report.failed == 1
        assert report.failures[0][0] == 'b.png'

    def test_vanished_file_fails_only_that_file(self, storage_config, folder):
        class VanishingClient(FakeClient):
            def put_object(self, **kwargs):
                if kwargs['Key'] == 'fractals/a.png':
                    (folder / 'b.png').unlink()
                return super().put_object(**kwargs)

        uploader, _ = make_uploader(storage_config, VanishingClient())

        report = uploader.upload_folder(folder, max_workers=1)

        assert [row.file_name for row in report.rows] == ['a.png', 'nested/c.jpg']
        assert [key for key, _ in report.failures] == ['b.png']

    def test_fatal_error_aborts(self, storage_config, folder):
        client = FakeClient({'fractals/a.png': [client_error('AccessDenied', 403)]})
        uploader, _ = make_uploader(storage_config, client)

        with pytest.raises(ConfigurationError):
            uploader.upload_folder(folder, max_workers=1)

    def test_missing_folder(self, storage_config, tmp_path):
        uploader, _ = make_uploader(storage_config, FakeClient())
        with pytest.raises(ConfigurationError):
            uploader.upload_folder(tmp_path / 'absent')

    def test_empty_folder(self, storage_config, tmp_path):
        uploader, _ = make_uploader(storage_config, FakeClient())
        report = uploader.upload_folder(tmp_path)
        assert report.rows == [] and report.failures == []
