"""
Unit tests for the Pexels photo client (HTTP replaced).
"""
import os
import sys

import pytest
import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents import pexels_agent
from agents.pexels_agent import PexelsAgent


class FakeResponse:
    def __init__(self, status_code=200, payload=None, body=b"jpeg-bytes"):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload or {}
        self._body = body

    def json(self):
        return self._payload

    def iter_content(self, chunk_size=8192):
        yield self._body


def _photo(pid):
    return {"id": pid, "src": {"portrait": f"https://img.test/{pid}.jpg"}}


class TestQueries:

    def test_narrowing_prefixes(self):
        agent = PexelsAgent(api_key="k")
        assert agent.build_queries(["ocean", "waves", "sunset"]) == ["ocean waves sunset", "ocean waves", "ocean"]
        assert agent.build_queries([]) == []


class TestFetchPhoto:

    def test_falls_through_empty_queries(self, tmp_path, monkeypatch):
        searched = []

        def fake_get(url, params=None, headers=None, timeout=None, stream=False):
            if params is not None:
                searched.append(params["query"])
                photos = [_photo(7)] if params["query"] == "ocean" else []
                return FakeResponse(payload={"photos": photos})
            return FakeResponse()

        monkeypatch.setattr(pexels_agent.requests, "get", fake_get)
        agent = PexelsAgent(api_key="k")
        out = str(tmp_path / "p.jpg")

        assert agent.fetch_photo(["ocean", "waves"], out) == out
        assert searched == ["ocean waves", "ocean"]
        assert 7 in agent.used_photo_ids
        with open(out, "rb") as f:
            assert f.read() == b"jpeg-bytes"

    def test_prefers_unused_photos(self, tmp_path, monkeypatch):
        downloaded = []

        def fake_get(url, params=None, headers=None, timeout=None, stream=False):
            if params is not None:
                return FakeResponse(payload={"photos": [_photo(1), _photo(2)]})
            downloaded.append(url)
            return FakeResponse()

        monkeypatch.setattr(pexels_agent.requests, "get", fake_get)
        agent = PexelsAgent(api_key="k")
        agent.fetch_photo(["cat"], str(tmp_path / "a.jpg"))
        agent.fetch_photo(["cat"], str(tmp_path / "b.jpg"))

        assert downloaded == ["https://img.test/1.jpg", "https://img.test/2.jpg"]

    def test_no_results(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            pexels_agent.requests, "get",
            lambda url, params=None, headers=None, timeout=None, stream=False: FakeResponse(payload={"photos": []}),
        )
        with pytest.raises(RuntimeError, match="No Pexels photos"):
            PexelsAgent(api_key="k").fetch_photo(["void"], str(tmp_path / "x.jpg"))

    def test_http_error(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            pexels_agent.requests, "get",
            lambda url, params=None, headers=None, timeout=None, stream=False: FakeResponse(status_code=429),
        )
        with pytest.raises(RuntimeError, match="HTTP 429"):
            PexelsAgent(api_key="k").fetch_photo(["cat"], str(tmp_path / "x.jpg"))

    def test_missing_key(self, tmp_path, no_remote_keys):
        with pytest.raises(RuntimeError, match="PEXELS_API_KEY"):
            PexelsAgent().fetch_photo(["cat"], str(tmp_path / "x.jpg"))

    def test_network_error_propagates(self, tmp_path, monkeypatch):
        def offline(*args, **kwargs):
            raise requests.ConnectionError("offline")

        monkeypatch.setattr(pexels_agent.requests, "get", offline)
        with pytest.raises(requests.ConnectionError):
            PexelsAgent(api_key="k").fetch_photo(["cat"], str(tmp_path / "x.jpg"))
