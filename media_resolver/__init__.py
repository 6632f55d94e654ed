"""Media Resolver: resilient media-asset resolution and idempotent registration."""

__version__ = "1.0.0"
