#!/usr/bin/env python3
"""Example of step-wise uploading with ResumableUpload."""

import os
import signal
import sys
import time

from resumable_tus import TusClient, UploadCancelled


def main():
    """Run the uploader example."""
    if len(sys.argv) < 3:
        print("Usage: python uploader_example.py <server_url> <file_path> [upload_url]")
        print("Example: python uploader_example.py http://localhost:8080/files /path/to/file.bin")
        print(
            "Example with existing upload: python uploader_example.py "
            "http://localhost:8080/files /path/to/file.bin "
            "http://localhost:8080/files/abc123"
        )
        sys.exit(1)

    server_url = sys.argv[1]
    file_path = sys.argv[2]
    client = TusClient(chunk_size=1024 * 1024)

    upload_url = sys.argv[3] if len(sys.argv) > 3 else None
    if upload_url is None:
        print("Creating new upload...")
        upload_url = client.create_with_metadata(
            server_url, file_path, {"filename": os.path.basename(file_path)}
        )
    print(f"Upload URL: {upload_url}")

    # Example 1: Manual chunk-by-chunk upload
    print("\n=== Example 1: Chunk by chunk ===")
    uploader = client.create_uploader(upload_url, file_path)
    chunk_count = 0
    while chunk_count < 3 and uploader.upload_chunk():
        chunk_count += 1
        stats = uploader.stats
        print(
            f"Chunk {chunk_count}: {stats.uploaded_bytes}/{stats.total_bytes} bytes "
            f"({stats.progress_percent:.1f}%)"
        )
        # Simulate doing other work between chunks
        time.sleep(0.1)

    # Example 2: Ctrl+C stops after the current chunk; run again to resume
    print("\n=== Example 2: Cancellable upload (press Ctrl+C) ===")
    uploader = client.create_uploader(upload_url, file_path)
    signal.signal(signal.SIGINT, lambda signum, frame: uploader.cancel())
    try:
        uploader.upload(
            progress_callback=lambda stats: print(f"\r{stats.progress_percent:.1f}%", end="")
        )
        print(f"\nUpload complete: {uploader.url}")
    except UploadCancelled as e:
        print(f"\nCancelled at offset {e.offset}. Resume with:")
        print(f"python uploader_example.py {server_url} {file_path} {upload_url}")


if __name__ == "__main__":
    main()
