"""ORM models for the media resolver."""

from .video_asset import VideoAsset
from .storage_reference import StorageReference

__all__ = ["VideoAsset", "StorageReference"]
