"""objcatalog: a local catalog and folder-aware mutations for S3-compatible object stores."""

__version__ = "0.1.0"
