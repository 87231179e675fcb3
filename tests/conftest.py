"""Pytest configuration for blockhost tests."""

from __future__ import annotations

import io
import json
import os
import stat
import sys
import zipfile
from pathlib import Path
from typing import Dict, Optional

import pytest
import requests

from tunnel.binary import HostPlatform

POSIX_ONLY = pytest.mark.skipif(sys.platform.startswith("win"), reason="uses shell script stand-ins")

# stands in for ngrok/playit: passes the probe, otherwise idles until signalled
AGENT_SCRIPT = """#!/bin/sh
if [ "$1" = "version" ] || [ "$1" = "--version" ]; then
  echo "agent 3.0.0-test"
  exit 0
fi
echo "$@" > "$(dirname "$0")/args.txt"
exec sleep 60
"""

FAILING_SCRIPT = """#!/bin/sh
exit 3
"""

# stands in for java; records its arguments in the working directory
JAVA_SCRIPT = """#!/bin/sh
echo "$@" > java-args.txt
exec sleep 60
"""


def write_script(path: Path, body: str, executable: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    if executable:
        os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_zip(entries: Dict[str, Optional[str]]) -> bytes:
    """Build a zip in memory; a None value makes a directory entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            if content is None:
                archive.writestr(zipfile.ZipInfo(name if name.endswith("/") else name + "/"), "")
            else:
                archive.writestr(name, content)
    return buffer.getvalue()


class FakeResponse:
    """Just enough of requests.Response for the code under test."""

    def __init__(self, content: bytes = b"", status_code: int = 200, json_data=None):
        self.content = content if json_data is None else json.dumps(json_data).encode()
        self.status_code = status_code
        self.closed = False

    def iter_content(self, chunk_size=8192):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def json(self):
        return json.loads(self.content.decode())

    def close(self):
        self.closed = True


class FakeHttp:
    """Routes requests.get/post by URL to canned responses, recording every call."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, *responses):
        self.routes.setdefault(url, []).extend(responses)

    def _answer(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.routes.get(url)
        if not queue:
            raise requests.ConnectionError(f"no route for {url}")
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def get(self, url, **kwargs):
        return self._answer("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._answer("POST", url, kwargs)

    def count(self, url):
        return sum(1 for _, called, _ in self.calls if called == url)


@pytest.fixture
def fake_http(monkeypatch) -> FakeHttp:
    http = FakeHttp()
    monkeypatch.setattr(requests, "get", http.get)
    monkeypatch.setattr(requests, "post", http.post)
    return http


@pytest.fixture
def linux_host() -> HostPlatform:
    return HostPlatform(os="linux", arch="amd64")


@pytest.fixture
def darwin_host() -> HostPlatform:
    return HostPlatform(os="darwin", arch="arm64")
