#!/usr/bin/env python3
"""Example TUS client usage: create, upload, inspect."""

import json
import logging
import os
import sys

from resumable_tus import TusClient, TusClientError, UploadStats


def progress_callback(stats: UploadStats):
    """Display upload progress."""
    bar_length = 50
    filled = int(bar_length * stats.progress_percent / 100)
    bar = "=" * filled + "-" * (bar_length - filled)
    print(
        f"\rProgress: [{bar}] {stats.progress_percent:.1f}% "
        f"({stats.uploaded_bytes}/{stats.total_bytes} bytes)",
        end="",
    )

    if stats.uploaded_bytes == stats.total_bytes:
        print()


def main():
    """Run the client example."""
    if len(sys.argv) < 3:
        print("Usage: python client_example.py <server_url> <file_path> [headers]")
        print(
            "Example: python client_example.py http://localhost:8080/files /path/to/file.bin "
            '{"Authorization": "Bearer your-token-here"}'
        )
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    server_url = sys.argv[1]
    file_path = sys.argv[2]
    headers = json.loads(sys.argv[3]) if len(sys.argv) > 3 else {}

    client = TusClient(
        chunk_size=1024 * 1024,  # 1MB chunks
        max_retries=5,
        headers=headers,  # Custom headers will be included in all requests
    )

    print(f"Getting server information for {server_url}")
    try:
        server_info = client.get_server_info(server_url)
        print(f"Server TUS Versions: {', '.join(server_info.versions)}")
        print(f"Supported Extensions: {[ext.value for ext in server_info.extensions]}")
        if server_info.max_size:
            print(f"Max Upload Size: {server_info.max_size} bytes")
    except TusClientError as e:
        print(f"Warning: Could not get server info: {e}")

    print("--------------------------------")

    print(f"Uploading {file_path} to {server_url}")
    try:
        upload_url = client.create_with_metadata(
            server_url, file_path, {"filename": os.path.basename(file_path)}
        )
        print(f"Upload URL: {upload_url}")
        client.upload(upload_url, file_path, progress_callback=progress_callback)
        print("Upload complete!")
    except TusClientError as e:
        print(f"Upload failed: {e}")
        if e.url:
            print(f"Resume later with the upload URL {e.url} (offset {e.offset})")
        sys.exit(1)

    print("--------------------------------")

    info = client.get_info(upload_url)
    print(f"Upload offset: {info.offset}/{info.length}")
    print(f"Upload complete: {info.is_complete}")
    print(f"Upload metadata: {info.metadata}")


if __name__ == "__main__":
    main()
