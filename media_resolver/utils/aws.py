# media_resolver/utils/aws.py
from __future__ import annotations

"""
🧊 Media Resolver • AWS Utilities
=================================

Thin wrappers over boto3 used by:
- Probe Engine (HEAD on `s3://bucket/key` candidates)
- Playback (short-lived signed GET for object-store candidates)
- Secondary transcoder (MediaConvert client with the same credentials)

🎯 Goals
--------
- Explicit timeouts + bounded retries on every client
- Defensive key normalization (no leading slash, no `..`)
- Pluggable creds (env / role / IRSA) with explicit override if provided
- HEAD outcomes that keep "not found" and "forbidden" apart
- Zero secret leakage in logs

Implementation notes
--------------------
- Kept **thin** over boto3 so failure modes stay familiar. Validation focuses on
  inputs we control (keys, URIs); S3-specific errors bubble as `S3StorageError`.
- boto3 is synchronous; async callers wrap these methods in `asyncio.to_thread`.
"""

from typing import Any, Dict, Optional, Tuple
import logging
import re

import boto3
import botocore
from botocore.config import Config as BotoConfig
from pydantic import SecretStr

from media_resolver.core.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Exceptions
# ─────────────────────────────────────────────────────────────────────────────

class S3StorageError(RuntimeError):
    """Raised when a storage operation fails (network, auth, policy, etc.)."""


class S3AccessDenied(S3StorageError):
    """HEAD/GET was rejected with 403."""


# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key / URI validation
# ─────────────────────────────────────────────────────────────────────────────

# Keep keys strict: readable + safe across tools, CDNs, and logs.
_KEY_ALLOWED_RE = re.compile(r"[A-Za-z0-9._\-/+=@() ]+")
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
_FORBIDDEN_CODES = {"403", "AccessDenied", "Forbidden"}


def _normalize_key(key: str) -> str:
    """
    Normalize and validate S3 object keys.

    Steps
    -----
    1) Coerce to str, strip whitespace
    2) Remove leading '/'
    3) Collapse '//' runs
    4) Reject path traversal ('..') and disallowed characters

    Raises
    ------
    S3StorageError
        If key is empty or contains unsafe characters.
    """
    k = str(key or "").strip().lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise S3StorageError("Invalid storage key: empty")
    if ".." in k:
        raise S3StorageError("Invalid storage key: path traversal detected")
    if not _KEY_ALLOWED_RE.fullmatch(k):
        raise S3StorageError("Invalid storage key: contains forbidden characters")
    return k


def s3_uri(bucket: str, key: str) -> str:
    """`s3://bucket/key` for a normalized key."""
    return f"s3://{bucket}/{_normalize_key(key)}"


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """
    Split `s3://bucket/key` into `(bucket, key)`.

    Raises
    ------
    S3StorageError
        When the URI is not an `s3://` URI or lacks a bucket/key.
    """
    if not uri or not uri.startswith("s3://"):
        raise S3StorageError(f"Not an s3:// URI: {uri!r}")
    bucket, _, key = uri[len("s3://"):].partition("/")
    if not bucket or not key:
        raise S3StorageError(f"Incomplete s3:// URI: {uri!r}")
    return bucket, _normalize_key(key)


def _secret_value(v: Optional[SecretStr | str]) -> Optional[str]:
    """Return the underlying secret string without raising if not SecretStr."""
    if v is None:
        return None
    return v.get_secret_value() if isinstance(v, SecretStr) else str(v)


def boto_client_kwargs(
    *,
    connect_timeout: float = 3,
    read_timeout: float = 10,
    max_attempts: int = 3,
    signature_version: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Keyword arguments for `boto3.client(...)` with explicit timeouts/retries.

    If `AWS_ACCESS_KEY_ID` + `AWS_SECRET_ACCESS_KEY` are configured they are
    passed explicitly; otherwise the standard AWS credential chain applies.
    """
    cfg_kwargs: Dict[str, Any] = {
        "retries": {"max_attempts": max_attempts, "mode": "standard"},
        "connect_timeout": connect_timeout,
        "read_timeout": read_timeout,
    }
    if signature_version:
        cfg_kwargs["signature_version"] = signature_version

    kwargs: Dict[str, Any] = {"config": BotoConfig(**cfg_kwargs)}
    if settings.AWS_REGION:
        kwargs["region_name"] = settings.AWS_REGION

    ak = settings.AWS_ACCESS_KEY_ID
    sk = _secret_value(settings.AWS_SECRET_ACCESS_KEY)
    st = _secret_value(settings.AWS_SESSION_TOKEN)
    if ak and sk:
        kwargs["aws_access_key_id"] = ak
        kwargs["aws_secret_access_key"] = sk
        if st:
            kwargs["aws_session_token"] = st
    return kwargs


# ─────────────────────────────────────────────────────────────────────────────
# 📦 S3 Client
# ─────────────────────────────────────────────────────────────────────────────

class S3Client:
    """
    S3 wrapper with safe defaults.

    Parameters
    ----------
    bucket : str | None
        Default bucket. Defaults to `settings.AWS_BUCKET_NAME`. Methods that
        take an explicit `bucket` (from an `s3://` URI) do not need it.
    endpoint_url : str | None
        Custom S3-compatible endpoint (LocalStack/MinIO). Defaults to
        `settings.AWS_S3_ENDPOINT_URL`.
    connect_timeout / read_timeout : float
        Per-request socket timeouts; probes pass their own, tighter values.
    client : Any
        Pre-built boto3 client (tests pass a stub).
    """

    # ────────────────────────────────────────────────────────────────────────
    # 🔧 Construction
    # ────────────────────────────────────────────────────────────────────────

    def __init__(
        self,
        bucket: Optional[str] = None,
        *,
        endpoint_url: Optional[str] = None,
        connect_timeout: float = 3,
        read_timeout: float = 10,
        client: Any = None,
    ) -> None:
        self.bucket = bucket or settings.AWS_BUCKET_NAME
        self.region = settings.AWS_REGION

        endpoint_cfg = endpoint_url or settings.AWS_S3_ENDPOINT_URL
        if client is not None:
            self.client = client
        else:
            client_kwargs = boto_client_kwargs(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                signature_version="s3v4",
            )
            if endpoint_cfg:
                client_kwargs["endpoint_url"] = endpoint_cfg
            try:
                self.client = boto3.client("s3", **client_kwargs)
            except Exception as e:  # pragma: no cover
                raise S3StorageError(f"Failed to create S3 client: {e}") from e

        self._repr = f"S3Client(bucket={self.bucket}, region={self.region}, endpoint={'yes' if endpoint_cfg else 'no'})"

    def _bucket(self, bucket: Optional[str]) -> str:
        b = bucket or self.bucket
        if not b:
            raise S3StorageError("AWS_BUCKET_NAME not configured")
        return b

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Signed URL helpers
    # ────────────────────────────────────────────────────────────────────────

    def presigned_get(
        self,
        key: str,
        *,
        bucket: Optional[str] = None,
        expires_in: int = 300,
        response_content_type: Optional[str] = None,
    ) -> str:
        """
        Generate a short-lived **presigned GET** URL.

        Returns
        -------
        str
            Fully signed URL for HTTP GET.
        """
        k = _normalize_key(key)
        params: Dict[str, Any] = {"Bucket": self._bucket(bucket), "Key": k}
        if response_content_type:
            params["ResponseContentType"] = response_content_type

        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=int(expires_in),
            )
        except Exception as e:
            raise S3StorageError(f"Failed to create presigned GET: {e}") from e

    def presigned_get_for_uri(self, uri: str, *, expires_in: int = 300) -> str:
        """Presigned GET for an `s3://bucket/key` reference."""
        bucket, key = parse_s3_uri(uri)
        return self.presigned_get(key, bucket=bucket, expires_in=expires_in)

    # ────────────────────────────────────────────────────────────────────────
    # 🔎 Metadata helpers
    # ────────────────────────────────────────────────────────────────────────

    def head(self, key: str, *, bucket: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        HEAD the object and return its metadata, or None if it does not exist.

        Raises
        ------
        S3AccessDenied
            On 403 (kept apart from "not found" so probes can report FORBIDDEN).
        S3StorageError
            On any other client/transport failure.
        """
        k = _normalize_key(key)
        try:
            resp = self.client.head_object(Bucket=self._bucket(bucket), Key=k)
            # detach from the botocore response model
            return dict(resp or {})
        except botocore.exceptions.ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return None
            if code in _FORBIDDEN_CODES:
                raise S3AccessDenied(f"head_object forbidden: {k}") from e
            raise S3StorageError(f"head_object failed ({code}): {e}") from e
        except botocore.exceptions.BotoCoreError as e:
            raise S3StorageError(f"head_object transport error: {e}") from e

    def head_uri(self, uri: str) -> Optional[Dict[str, Any]]:
        """`head()` for an `s3://bucket/key` reference."""
        bucket, key = parse_s3_uri(uri)
        return self.head(key, bucket=bucket)

    def __repr__(self) -> str:  # pragma: no cover
        return self._repr


__all__ = [
    "S3StorageError",
    "S3AccessDenied",
    "S3Client",
    "boto_client_kwargs",
    "parse_s3_uri",
    "s3_uri",
]
