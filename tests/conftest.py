import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

BASE_URL = "http://sync.test:8181/api.rsc"


@pytest.fixture
def httpx_mock(monkeypatch):
    """Fixture to mock httpx requests."""
    class MockTransport(httpx.MockTransport):
        def __init__(self):
            self.responses = []
            self.requests = []
            super().__init__(self._handler)

        def _handler(self, request):
            self.requests.append(request)
            for response_config in self.responses:
                if self._matches(request, response_config):
                    if response_config.get("exception") is not None:
                        raise response_config["exception"]
                    if response_config.get("text") is not None:
                        return httpx.Response(
                            status_code=response_config["status_code"],
                            text=response_config["text"],
                        )
                    return httpx.Response(
                        status_code=response_config["status_code"],
                        json=response_config.get("json"),
                    )
            raise Exception(f"No mock configured for {request.method} {request.url}")

        def _matches(self, request, config):
            if config.get("method") and config["method"] != request.method:
                return False
            expected_url = config["url"]
            actual_url = str(request.url)
            # Normalize URLs for comparison (handle query param order and %24 for $)
            return expected_url == actual_url or self._urls_match(expected_url, actual_url)

        def _urls_match(self, expected, actual):
            exp_parsed = urlparse(expected)
            act_parsed = urlparse(actual)

            if exp_parsed.scheme != act_parsed.scheme:
                return False
            if exp_parsed.netloc != act_parsed.netloc:
                return False
            if exp_parsed.path != act_parsed.path:
                return False

            exp_params = parse_qs(exp_parsed.query)
            act_params = parse_qs(act_parsed.query)
            return exp_params == act_params

        def add_response(self, url, json=None, status_code=200, method=None, text=None):
            self.responses.append({
                "url": url,
                "json": json,
                "text": text,
                "status_code": status_code,
                "method": method,
            })

        def add_exception(self, url, exception, method=None):
            self.responses.append({"url": url, "exception": exception, "method": method})

        @property
        def last_request(self):
            return self.requests[-1]

        def last_body(self):
            return json.loads(self.last_request.content)

    mock = MockTransport()

    original_init = httpx.AsyncClient.__init__

    def patched_init(self, *args, **kwargs):
        kwargs['transport'] = mock
        original_init(self, *args, **kwargs)

    monkeypatch.setattr(httpx.AsyncClient, "__init__", patched_init)
    return mock


@pytest.fixture
def sync_config():
    from cdata_sync_mcp.config import SyncConfig

    return SyncConfig(base_url=BASE_URL, auth_token="test-token-12345")


@pytest.fixture
def sync_client(sync_config):
    from cdata_sync_mcp.client import CDataSyncClient

    return CDataSyncClient(sync_config)
