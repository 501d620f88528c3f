from __future__ import annotations

from dataclasses import dataclass

import boto3
from botocore.config import Config as BotoConfig


class StorageError(RuntimeError):
    pass


class Storage:
    def presign_upload(self, key: str, *, content_type: str, expires_in: int) -> str:
        raise NotImplementedError

    def presign_download(self, key: str, *, expires_in: int) -> str:
        raise NotImplementedError

    def check(self) -> None:
        raise NotImplementedError


def _endpoint_url(endpoint: str) -> str | None:
    if not endpoint:
        return None
    if endpoint.startswith(("http://", "https://")):
        return endpoint
    return f"https://{endpoint}"


@dataclass(frozen=True)
class S3Storage(Storage):
    """
    S3-compatible object store (AWS, MinIO, DO Spaces).

    The API talks to the store on `endpoint` but browsers use `public_url`.
    SigV4 signs the Host header, so presigned URLs must be generated by a client
    configured with the public address or the store rejects them.
    """

    endpoint: str
    public_url: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str
    use_path_style: bool = True

    def _client(self, *, public: bool = False):
        endpoint = self.public_url if public and self.public_url else self.endpoint
        return boto3.client(
            "s3",
            endpoint_url=_endpoint_url(endpoint),
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=BotoConfig(
                signature_version="s3v4",
                s3={"addressing_style": "path" if self.use_path_style else "virtual"},
            ),
        )

    def presign_upload(self, key: str, *, content_type: str, expires_in: int) -> str:
        return self._client(public=True).generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in,
            HttpMethod="PUT",
        )

    def presign_download(self, key: str, *, expires_in: int) -> str:
        return self._client(public=True).generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def check(self) -> None:
        self._client().head_bucket(Bucket=self.bucket)


REQUIRED_S3_KEYS = ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")


def missing_storage_config(config: dict) -> list[str]:
    return [k for k in REQUIRED_S3_KEYS if not (config.get(k) or "").strip()]


def storage_from_config(config: dict) -> Storage:
    missing = missing_storage_config(config)
    if missing:
        raise StorageError(f"Missing required S3 settings: {', '.join(missing)}")
    return S3Storage(
        endpoint=(config.get("S3_ENDPOINT") or "").strip(),
        public_url=(config.get("S3_PUBLIC_URL") or "").strip(),
        region=(config.get("S3_REGION") or "us-east-1").strip(),
        bucket=(config.get("S3_BUCKET") or "").strip(),
        access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
        secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        use_path_style=bool(config.get("S3_USE_PATH_STYLE", True)),
    )
