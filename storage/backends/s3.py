"""
S3-compatible storage backend (AWS S3, Backblaze B2, MinIO, etc.)
"""
import os
from pathlib import Path
from typing import Any, AsyncIterator, Dict

import aiofiles
import aioboto3
from botocore.config import Config
from botocore.exceptions import ClientError

from storage.base import StorageBackend


class S3StorageBackend(StorageBackend):
    """Storage backend for S3-compatible services."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        self.endpoint = config.get("endpoint") or "https://s3.amazonaws.com"
        self.region = config.get("region", "us-east-1")
        self.bucket = config.get("bucket")
        self.access_key = config.get("access_key") or os.getenv("AWS_ACCESS_KEY_ID")
        self.secret_key = config.get("secret_key") or os.getenv("AWS_SECRET_ACCESS_KEY")
        self.path_style = config.get("path_style", False)
        self.verify_ssl = config.get("verify_ssl", True)

        if not self.bucket:
            raise ValueError("S3 backend requires 'bucket' configuration")

        self.session = aioboto3.Session(
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            region_name=self.region,
        )

        self.s3_config = {
            "endpoint_url": self.endpoint if self.endpoint != "https://s3.amazonaws.com" else None,
            "use_ssl": self.endpoint.startswith("https"),
            "verify": self.verify_ssl,
            "region_name": self.region,
        }

        if self.path_style:
            self.s3_config["config"] = Config(s3={"addressing_style": "path"})

    async def put_file(self, key: str, path: Path, content_type: str) -> None:
        """Upload a local file as a single object."""
        async with aiofiles.open(path, "rb") as f:
            data = await f.read()

        async with self.session.client("s3", **self.s3_config) as s3:
            await s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )

    async def exists(self, key: str) -> bool:
        """Check if object exists in S3."""
        async with self.session.client("s3", **self.s3_config) as s3:
            try:
                await s3.head_object(Bucket=self.bucket, Key=key)
                return True
            except ClientError as e:
                if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                    return False
                raise

    async def read(self, key: str, chunk_size: int = 8192) -> AsyncIterator[bytes]:
        """Read object from S3 in chunks."""
        async with self.session.client("s3", **self.s3_config) as s3:
            try:
                response = await s3.get_object(Bucket=self.bucket, Key=key)

                async with response["Body"] as stream:
                    while True:
                        chunk = await stream.read(chunk_size)
                        if not chunk:
                            break
                        yield chunk

            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchKey":
                    raise FileNotFoundError(f"Object not found: {key}")
                raise
