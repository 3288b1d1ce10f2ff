"""Shared fixtures: an in-memory transport with fault injection and a local tus endpoint."""

import base64
import hashlib
import os
import shutil
import tempfile
import uuid
from http.server import BaseHTTPRequestHandler, HTTPServer
from threading import Thread

import pytest

from resumable_tus.exceptions import ResourceNotFound, TransportInterrupted, TransportRejected
from resumable_tus.transport import Transport, UploadInfo

MiB = 1024 * 1024


class FakeUpload:
    def __init__(self, length, data=b"", metadata=None):
        self.length = length
        self.data = bytearray(data)
        self.metadata = dict(metadata or {})


class FakeTransport(Transport):
    """In-memory tus server reachable through the Transport interface.

    Fault injection (patch calls are numbered from 1):
        interrupt_patches: patch calls that raise TransportInterrupted
        land_before_interrupt: interrupted patch calls whose data is still stored
        skew_acks: patch call -> delta added to the acknowledged offset
        interrupt_queries: number of upcoming offset queries to interrupt
        offset_overrides: values returned by the next offset queries
    """

    def __init__(self):
        self.uploads = {}
        self.calls = []
        self.interrupt_patches = set()
        self.land_before_interrupt = set()
        self.skew_acks = {}
        self.interrupt_queries = 0
        self.offset_overrides = []
        self.reject_create_status = None
        self.patch_count = 0
        self.on_patch = None

    def add_upload(self, url, length, data=b""):
        self.uploads[url] = FakeUpload(length, data)
        return url

    def create(self, destination_url, total_length, metadata=None):
        self.calls.append(("create", destination_url, total_length))
        if self.reject_create_status:
            raise TransportRejected(
                status_code=self.reject_create_status, url=destination_url, response_content=b"no"
            )
        url = f"{destination_url.rstrip('/')}/{uuid.uuid4().hex}"
        self.uploads[url] = FakeUpload(total_length, metadata=metadata)
        return url

    def query_offset(self, resource_url):
        self.calls.append(("query", resource_url))
        if self.interrupt_queries:
            self.interrupt_queries -= 1
            raise TransportInterrupted("connection reset by peer", url=resource_url)
        if resource_url not in self.uploads:
            raise ResourceNotFound(status_code=404, url=resource_url)
        if self.offset_overrides:
            return self.offset_overrides.pop(0)
        return len(self.uploads[resource_url].data)

    def query_upload(self, resource_url):
        offset = self.query_offset(resource_url)
        return UploadInfo(offset=offset, length=self.uploads[resource_url].length)

    def patch(self, resource_url, offset, data):
        self.patch_count += 1
        number = self.patch_count
        self.calls.append(("patch", resource_url, offset, len(data)))
        if self.on_patch:
            self.on_patch(number)

        upload = self.uploads.get(resource_url)
        if upload is None:
            raise ResourceNotFound(status_code=404, url=resource_url)
        if offset != len(upload.data):
            raise TransportRejected(status_code=409, url=resource_url, offset=offset)

        if number in self.interrupt_patches:
            if number in self.land_before_interrupt:
                upload.data.extend(data)
            raise TransportInterrupted("read timed out", url=resource_url)

        upload.data.extend(data)
        return len(upload.data) + self.skew_acks.get(number, 0)

    def get_info(self, resource_url):
        upload = self.uploads.get(resource_url)
        if upload is None:
            raise ResourceNotFound(status_code=404, url=resource_url)
        return UploadInfo(offset=len(upload.data), length=upload.length, metadata=upload.metadata)

    def delete(self, resource_url):
        if self.uploads.pop(resource_url, None) is None:
            raise ResourceNotFound(status_code=404, url=resource_url)

    def ops(self, name):
        return [call for call in self.calls if call[0] == name]

    def patches(self):
        """(offset, length) of every patch call."""
        return [(call[2], call[3]) for call in self.ops("patch")]


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def make_file(temp_dir):
    """Factory writing a file of the given bytes (or random bytes of the given size)."""

    def _make_file(content, name="upload.bin"):
        if isinstance(content, int):
            content = os.urandom(content)
        file_path = os.path.join(temp_dir, name)
        with open(file_path, "wb") as f:
            f.write(content)
        return file_path

    return _make_file


class TusTestHandler(BaseHTTPRequestHandler):
    """Minimal tus 1.0.0 endpoint under /files, storing uploads in memory."""

    def log_message(self, format, *args):
        pass

    def _reply(self, status, headers=None):
        self.send_response(status)
        self.send_header("Tus-Resumable", "1.0.0")
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _upload(self):
        return self.server.uploads.get(self.path.rstrip("/").rsplit("/", 1)[-1])

    def do_OPTIONS(self):
        self._reply(
            204,
            {
                "Tus-Version": "1.0.0",
                "Tus-Extension": "creation,termination,checksum,creation-with-upload",
                "Tus-Max-Size": str(self.server.max_size),
            },
        )

    def do_POST(self):
        override = self.headers.get("X-HTTP-Method-Override")
        self.server.methods.append(f"POST+{override}" if override else "POST")
        if override == "PATCH":
            return self._patch()
        if override == "DELETE":
            return self._delete()

        length = int(self.headers["Upload-Length"])
        if length > self.server.max_size:
            return self._reply(413)
        upload_id = uuid.uuid4().hex
        self.server.uploads[upload_id] = {
            "length": length,
            "data": bytearray(),
            "metadata": self.headers.get("Upload-Metadata"),
        }
        self._reply(201, {"Location": f"/files/{upload_id}"})

    def do_HEAD(self):
        self.server.methods.append("HEAD")
        upload = self._upload()
        if upload is None:
            return self._reply(404)
        headers = {
            "Upload-Offset": str(len(upload["data"])),
            "Upload-Length": str(upload["length"]),
            "Cache-Control": "no-store",
        }
        if upload["metadata"]:
            headers["Upload-Metadata"] = upload["metadata"]
        self._reply(200, headers)

    def do_PATCH(self):
        self.server.methods.append("PATCH")
        self._patch()

    def do_DELETE(self):
        self.server.methods.append("DELETE")
        self._delete()

    def _patch(self):
        body = self.rfile.read(int(self.headers.get("Content-Length", 0)))
        upload = self._upload()
        if upload is None:
            return self._reply(404)
        if self.server.gateway_failures:
            self.server.gateway_failures -= 1
            return self._reply(503)
        if int(self.headers["Upload-Offset"]) != len(upload["data"]):
            return self._reply(409)

        checksum = self.headers.get("Upload-Checksum")
        if checksum:
            algorithm, digest = checksum.split(" ", 1)
            expected = base64.b64encode(hashlib.sha1(body).digest()).decode("ascii")
            if algorithm != "sha1" or digest != expected:
                return self._reply(460)

        upload["data"].extend(body)
        self._reply(204, {"Upload-Offset": str(len(upload["data"]))})

    def _delete(self):
        upload_id = self.path.rstrip("/").rsplit("/", 1)[-1]
        if self.server.uploads.pop(upload_id, None) is None:
            return self._reply(404)
        self._reply(204)


@pytest.fixture
def tus_server():
    """Start a local tus endpoint; yields (collection_url, server)."""
    server = HTTPServer(("127.0.0.1", 0), TusTestHandler)
    server.uploads = {}
    server.methods = []
    server.gateway_failures = 0
    server.max_size = 1024 * MiB
    port = server.server_address[1]
    thread = Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{port}/files", server

    server.shutdown()
    server.server_close()
