"""Entry point for the blob uploader service."""

from __future__ import annotations

from apps.blob_uploader.main import main

if __name__ == "__main__":
    main()
