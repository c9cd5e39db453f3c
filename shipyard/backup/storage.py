"""
S3 compatible storage targets.

Uploads themselves run on the database's server inside the helper container
(see DatabaseBackupJob.upload_to_s3); this module resolves the stored
credentials, checks that a target is reachable before an upload and
confirms the uploaded dump is listed in the bucket afterwards.
"""

from typing import Tuple

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from shipyard.utils.crypto import secret_box


class StorageError(Exception):
    """Raised when a storage target is unusable."""
    pass


def decrypt_credentials(s3) -> Tuple[str, str]:
    """
    Decrypt the access key and secret of an S3Storage record.

    Raises:
        StorageError: If the secrets cannot be decrypted
    """
    if not secret_box.is_initialized:
        raise StorageError("ENCRYPTION_KEY not configured, cannot decrypt S3 credentials")

    try:
        return secret_box.decrypt(s3.key_encrypted), secret_box.decrypt(s3.secret_encrypted)
    except RuntimeError as e:
        raise StorageError(str(e))


class S3Storage:
    """
    Client for an S3 compatible bucket (AWS, MinIO, ...).
    """

    def __init__(self, access_key: str, secret_key: str, bucket_name: str, endpoint: str, region: str = 'us-east-1'):
        """
        Args:
            access_key: Access key ID
            secret_key: Secret access key
            bucket_name: Bucket name
            endpoint: Endpoint URL (e.g. https://s3.amazonaws.com or a MinIO URL)
            region: Region, only used for request signing
        """
        self.bucket_name = bucket_name
        self.endpoint = endpoint

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                endpoint_url=endpoint or None,
                region_name=region
            )
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    @classmethod
    def from_model(cls, s3):
        """Build a client from an S3Storage model row."""
        access_key, secret_key = decrypt_credentials(s3)
        return cls(
            access_key=access_key,
            secret_key=secret_key,
            bucket_name=s3.bucket,
            endpoint=s3.endpoint,
            region=s3.region or 'us-east-1'
        )

    def test_connection(self) -> bool:
        """
        Test bucket access.

        Returns:
            True if the bucket is reachable

        Raises:
            StorageError: If the bucket is missing, forbidden or unreachable
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == '404':
                raise StorageError(f"Bucket does not exist: {self.bucket_name}")
            elif error_code == '403':
                raise StorageError(f"Access denied to bucket: {self.bucket_name}")
            else:
                raise StorageError(f"S3 connection test failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to connect to S3 at {self.endpoint}: {e}")

    def list_backups(self, prefix: str) -> list:
        """
        List uploaded backups under a directory prefix.

        Returns:
            List of dicts with 'Key', 'LastModified' and 'Size'

        Raises:
            StorageError: If listing fails
        """
        try:
            objects = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix.lstrip('/')):
                for obj in page.get('Contents', []):
                    objects.append({
                        'Key': obj['Key'],
                        'LastModified': obj['LastModified'],
                        'Size': obj['Size']
                    })

            return objects

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to list S3 objects: {e}")
