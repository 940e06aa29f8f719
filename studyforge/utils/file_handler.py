import os
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from studyforge.utils.logger import get_logger

LOG = get_logger()

AWS_S3_BUCKET = os.getenv('AWS_S3_BUCKET')
AWS_REGION = os.getenv('AWS_REGION', 'us-east-1')
S3_PUBLIC_BASE_URL = os.getenv('S3_PUBLIC_BASE_URL')


class StorageError(Exception):
    """Raised when an upload cannot be written to blob storage."""


class S3Storage:
    """Blob storage adapter used by the upload flow: ``put(key, data, content_type) -> url``."""

    def __init__(self, bucket: str = None, client=None):
        self.bucket = bucket or AWS_S3_BUCKET
        self.s3 = client or boto3.client(
            's3',
            region_name=AWS_REGION,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
        )
        LOG.info('s3_storage_initialized', extra={'bucket': self.bucket})

    def url_for(self, key: str) -> str:
        if S3_PUBLIC_BASE_URL:
            return f"{S3_PUBLIC_BASE_URL.rstrip('/')}/{quote(key)}"
        return f'https://{self.bucket}.s3.{AWS_REGION}.amazonaws.com/{quote(key)}'

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if not self.bucket:
            raise StorageError('AWS_S3_BUCKET not configured')
        if not key:
            raise StorageError('Empty storage key')
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            LOG.exception('s3_put_failed', extra={'bucket': self.bucket, 'key': key})
            raise StorageError(str(e)) from e
        LOG.info('s3_put', extra={'bucket': self.bucket, 'key': key, 'size': len(data)})
        return self.url_for(key)
