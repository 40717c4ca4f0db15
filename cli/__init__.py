"""Command line interface for S3 Archiver."""
