import io
import logging
import tarfile

import pytest
import requests

from ormagent.core.config import AgentConfig


MANIFEST_URL = "https://updates.example/fleet/manifest.yaml"


def _script(body: str) -> str:
    return f"#!/bin/sh\n{body}\n"


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b""):
        self.status_code = status_code
        self.content = content

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture(autouse=True)
def _clean_root_logger():
    yield
    # keep root logger clean for other tests
    logging.getLogger().handlers.clear()


@pytest.fixture
def write_script():
    def _write(path, body):
        path.write_text(_script(body), encoding="utf-8")
        path.chmod(0o755)
        return path

    return _write


@pytest.fixture
def build_archive():
    def _build(entries, mode=0o755):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            for name, content in entries.items():
                data = content.encode("utf-8")
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = mode
                tar.addfile(info, io.BytesIO(data))
        return buf.getvalue()

    return _build


@pytest.fixture
def release_archive(build_archive):
    def _release(app_name="app", run_body="exit 0", id_body="echo gw-eu-001"):
        return build_archive({
            f"{app_name}/run.sh": _script(run_body),
            f"{app_name}/id.sh": _script(id_body),
            f"{app_name}/lib/payload.txt": "new release\n",
        })

    return _release


@pytest.fixture
def local_prefix(tmp_path, write_script):
    prefix = tmp_path / "opt"
    app_dir = prefix / "app"
    app_dir.mkdir(parents=True)
    write_script(app_dir / "id.sh", "echo gw-eu-001")
    write_script(app_dir / "run.sh", 'touch "$(dirname "$0")/ran"')
    (app_dir / "payload.txt").write_text("old release\n", encoding="utf-8")
    (app_dir / ".orm_version").write_text("1.0.0", encoding="utf-8")
    return prefix


@pytest.fixture
def config(local_prefix):
    return AgentConfig(
        object_type="gateway",
        manifest_url=MANIFEST_URL,
        app_name="app",
        local_prefix=str(local_prefix),
        http_timeout=5.0,
    )


@pytest.fixture
def http(monkeypatch):
    """Route ``requests.get`` to canned responses keyed by URL."""

    class _Router:
        def __init__(self):
            self.routes = {}
            self.calls = []

        def serve(self, url, content=b"", status_code=200):
            if isinstance(content, str):
                content = content.encode("utf-8")
            self.routes[url] = (status_code, content)

        def get(self, url, **_kwargs):
            self.calls.append(url)
            if url not in self.routes:
                return FakeResponse(404, b"not found")
            status_code, content = self.routes[url]
            return FakeResponse(status_code, content)

    router = _Router()
    monkeypatch.setattr(requests, "get", router.get)
    return router
