"""Utility helpers for the media resolver.

Submodules:
- aws: boto3 wrappers (S3 HEAD/presign/URL building, shared client kwargs)
"""

__all__: list[str] = []
