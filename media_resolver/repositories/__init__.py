"""
Repository package for data access layers.

You can provide a custom implementation by setting the environment variable
`VIDEO_ASSET_REPOSITORY_IMPL` to a dotted path like:

    myapp.data.assets:CustomVideoAssetRepository

and ensuring that class implements the interface used by
media_resolver.repositories.video_assets.
"""
