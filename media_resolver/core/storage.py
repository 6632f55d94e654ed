from __future__ import annotations

"""
Media Resolver • Object Store Layout
====================================

Key layouts observed for uploaded media (single private bucket behind a CDN):

    s3://{bucket}/
      videos/{asset_id}.mp4            canonical upload key
      videos/{asset_id}                extensionless legacy uploads
      {asset_id}.mp4                   bucket-root legacy uploads
      videos/{asset_id}.{mov,avi,webm} non-MP4 originals
      thumbnails/{asset_id}.{jpg,jpeg,png,webp}
      thumbnails/{asset_id}-thumbnail.jpg / -thumb.jpg
      videos/{asset_id}-thumbnail.jpg / {asset_id}.jpg   thumbnails stored beside the video

The Storage Location Catalog turns these templates into candidate URIs; order
here is the most-likely-first order used during discovery.
"""

# Prefix constants (string templates)
S3_PREFIX_VIDEOS = "videos/"
S3_PREFIX_THUMBNAILS = "thumbnails/"

VIDEO_KEY_TEMPLATES = (
    "videos/{asset_id}.mp4",
    "videos/{asset_id}",
    "{asset_id}.mp4",
    "{asset_id}",
    "videos/{asset_id}.mov",
    "videos/{asset_id}.avi",
    "videos/{asset_id}.webm",
)

THUMBNAIL_KEY_TEMPLATES = (
    "thumbnails/{asset_id}.jpg",
    "thumbnails/{asset_id}.jpeg",
    "thumbnails/{asset_id}.png",
    "thumbnails/{asset_id}.webp",
    "thumbnails/{asset_id}-thumbnail.jpg",
    "thumbnails/{asset_id}-thumb.jpg",
    "videos/{asset_id}-thumbnail.jpg",
    "videos/{asset_id}.jpg",
)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".webm", ".mkv", ".m4v", ".wmv")
THUMBNAIL_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")

# Frame-capture outputs from the secondary transcoder land here:
#   {MEDIACONVERT_OUTPUT_PREFIX}{asset_id}_thumb_{asset_id}.0000000.jpg
SECONDARY_THUMBNAIL_NAME_MODIFIER = "_thumb_{asset_id}"
SECONDARY_THUMBNAIL_FRAME_SUFFIX = ".0000000.jpg"


def secondary_thumbnail_key(output_prefix: str, asset_id: str, source_key: str) -> str:
    """Object key of the single JPEG a frame-capture job writes for `source_key`."""
    base = source_key.rstrip("/").rsplit("/", 1)[-1]
    stem = base.rsplit(".", 1)[0] if "." in base else base
    modifier = SECONDARY_THUMBNAIL_NAME_MODIFIER.format(asset_id=asset_id)
    return f"{output_prefix}{stem or base}{modifier}{SECONDARY_THUMBNAIL_FRAME_SUFFIX}"
