"""
End-to-end capture protocol through the ASGI stack.
"""

from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from fastapi.testclient import TestClient

from pagecache.constants import CACHE_STATUS_HEADER, REWRITE_BEGIN_MARKER
from pagecache.infrastructure.exceptions import StorageUnavailableException
from pagecache.main import install_page_cache

pytestmark = pytest.mark.integration


class TestTTLBackend:
    """Middleware with the fakeredis-backed TTL store."""

    @pytest.fixture
    def site(self, make_site, redis_repository):
        return make_site(backend=redis_repository)

    def test_miss_then_hit(self, site):
        with TestClient(site.app) as client:
            first = client.get("/hello")
            second = client.get("/hello")

        assert first.status_code == 200
        assert first.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert second.headers[CACHE_STATUS_HEADER] == "HIT (ttl)"
        assert second.text == "<html>hello</html>"
        assert second.headers["content-type"].startswith("text/html")
        assert site.renders["hello"] == 1

    def test_miss_replays_original_response(self, site):
        with TestClient(site.app) as client:
            response = client.get("/hello")

        assert response.text == "<html>hello</html>"
        assert response.headers["content-length"] == str(len(b"<html>hello</html>"))

    def test_authenticated_caller_bypasses_cache(self, site):
        with TestClient(site.app) as client:
            private = client.get("/hello", headers={"Cookie": "session_id=abc"})
            anonymous = client.get("/hello")

        assert CACHE_STATUS_HEADER not in private.headers
        assert anonymous.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert site.renders["hello"] == 2

    def test_bearer_token_bypasses_cache(self, site):
        with TestClient(site.app) as client:
            client.get("/hello", headers={"Authorization": "Bearer abc"})
            response = client.get("/hello", headers={"Authorization": "Bearer abc"})

        assert CACHE_STATUS_HEADER not in response.headers
        assert site.renders["hello"] == 2

    @pytest.mark.parametrize(
        "path",
        ["/admin/dashboard", "/hello?utm_source=mail"],
    )
    def test_skipped_requests_have_no_header(self, site, path):
        with TestClient(site.app) as client:
            client.get(path)
            response = client.get(path)

        assert response.status_code == 200
        assert CACHE_STATUS_HEADER not in response.headers

    def test_post_is_never_cached(self, site):
        with TestClient(site.app) as client:
            response = client.post("/publish/999")

        assert response.status_code == 200
        assert CACHE_STATUS_HEADER not in response.headers

    @pytest.mark.parametrize(
        "path, name",
        [
            ("/feed.json", "feed"),
            ("/greeting", "greeting"),
            ("/gone", "gone"),
            ("/empty", "empty"),
            ("/xhtml-page", "xhtml"),
        ],
    )
    def test_ineligible_responses_are_not_stored(self, site, path, name):
        """Non-HTML, cookie-setting, non-200 and empty responses stay uncached."""
        with TestClient(site.app) as client:
            first = client.get(path)
            second = client.get(path)

        assert first.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert second.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert first.content == second.content
        assert site.renders[name] == 2

    def test_cookie_is_replayed_on_miss(self, site):
        with TestClient(site.app) as client:
            response = client.get("/greeting")

        assert response.cookies.get("seen") == "1"

    def test_handler_error_stores_nothing(self, site):
        with TestClient(site.app, raise_server_exceptions=False) as client:
            first = client.get("/boom")
            second = client.get("/boom")

        assert first.status_code == 500
        assert second.status_code == 500
        assert site.renders["boom"] == 2

    def test_publish_event_evicts_related_pages(self, site):
        with TestClient(site.app) as client:
            client.get("/2024/hello-world")
            client.get("/")
            assert client.get("/2024/hello-world").headers[CACHE_STATUS_HEADER] == "HIT (ttl)"

            client.post("/publish/42")

            post = client.get("/2024/hello-world")
            home = client.get("/")

        assert post.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert home.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert site.renders["post"] == 2
        assert site.renders["home"] == 2

    def test_revision_event_keeps_cache(self, site):
        with TestClient(site.app) as client:
            client.get("/2024/hello-world")
            client.post("/publish/43")
            response = client.get("/2024/hello-world")

        assert response.headers[CACHE_STATUS_HEADER] == "HIT (ttl)"

    def test_delete_event_evicts_pages_of_removed_entity(self, site):
        with TestClient(site.app) as client:
            client.get("/2024/hello-world")
            client.get("/")

            client.post("/delete/42")

            post = client.get("/2024/hello-world")
            home = client.get("/")

        assert post.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert home.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert site.renders["post"] == 2
        assert site.renders["home"] == 2

    @pytest.mark.parametrize("encoded, decoded", [("bar%23x", "bar#x"), ("bar%3Fx", "bar?x")])
    def test_encoded_delimiters_stay_in_the_key(self, site, encoded, decoded):
        """A page routed at /pages/bar#x is never replayed for /pages/bar."""
        with TestClient(site.app) as client:
            first = client.get(f"/pages/{encoded}")
            plain = client.get("/pages/bar")
            again = client.get(f"/pages/{encoded}")

        assert first.text == f"<html>page for /pages/{decoded}</html>"
        assert plain.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert plain.text == "<html>page for /pages/bar</html>"
        assert again.headers[CACHE_STATUS_HEADER] == "HIT (ttl)"
        assert again.text == f"<html>page for /pages/{decoded}</html>"

    def test_event_stream_is_not_held_back(self, site):
        """Headers of a non-HTML stream go out before the stream is drained."""

        async def recording_app(scope, receive, send):
            async def recording_send(message):
                if message["type"] == "http.response.start":
                    site.timeline.append("start-sent")
                await send(message)

            await site.app(scope, receive, recording_send)

        with TestClient(recording_app) as client:
            first = client.get("/events")
            second = client.get("/events")

        assert first.text == "data: 0\n\ndata: 1\n\ndata: 2\n\n"
        assert site.timeline.index("start-sent") < site.timeline.index("chunk1")
        assert first.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert second.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert site.renders["events"] == 2

    def test_storage_outage_serves_pages(self, make_site, mock_repository):
        """A backend that fails every call still lets pages render."""
        mock_repository.get.side_effect = StorageUnavailableException("get", "ttl")
        mock_repository.put.side_effect = StorageUnavailableException("put", "ttl")
        site = make_site(backend=mock_repository)

        with TestClient(site.app) as client:
            responses = [client.get("/hello") for _ in range(3)]

        assert all(r.status_code == 200 for r in responses)
        assert all(r.text == "<html>hello</html>" for r in responses)
        assert site.renders["hello"] == 3


class TestStaticBackend:
    """Middleware with the static file store and rewrite block."""

    @pytest.fixture
    def site(self, make_site, settings):
        settings.PAGE_CACHE_BACKEND = "static"
        Path(settings.DOCUMENT_ROOT).mkdir(parents=True)
        return make_site()

    def test_miss_writes_file_then_hit(self, site, settings):
        with TestClient(site.app) as client:
            first = client.get("/hello")
            second = client.get("/hello")

        page = Path(settings.STATIC_CACHE_ROOT) / "hello" / "index.html"
        assert first.headers[CACHE_STATUS_HEADER] == "MISS (static)"
        assert second.headers[CACHE_STATUS_HEADER] == "HIT (static)"
        assert page.read_bytes() == b"<html>hello</html>"
        assert site.renders["hello"] == 1

    def test_rewrite_block_installed_on_startup(self, site, settings):
        with TestClient(site.app):
            pass

        htaccess = Path(settings.DOCUMENT_ROOT) / ".htaccess"
        assert REWRITE_BEGIN_MARKER in htaccess.read_text()

    def test_publish_removes_files(self, site, settings):
        with TestClient(site.app) as client:
            client.get("/2024/hello-world")
            client.post("/publish/42")

        page = Path(settings.STATIC_CACHE_ROOT) / "2024" / "hello-world" / "index.html"
        assert not page.exists()

    def test_delete_removes_files(self, site, settings):
        with TestClient(site.app) as client:
            client.get("/2024/hello-world")
            client.get("/")
            client.post("/delete/42")

        root = Path(settings.STATIC_CACHE_ROOT)
        assert not (root / "2024" / "hello-world" / "index.html").exists()
        assert not (root / "index.html").exists()

    def test_paths_changed_by_sanitization_are_not_written(self, site, settings):
        with TestClient(site.app) as client:
            encoded = client.get("/pages/bar%23x")
            plain = client.get("/pages/barx")

        assert CACHE_STATUS_HEADER not in encoded.headers
        assert plain.headers[CACHE_STATUS_HEADER] == "MISS (static)"
        assert plain.text == "<html>page for /pages/barx</html>"


class TestInstallIntoExistingApp:
    """install_page_cache keeps the host's own lifespan."""

    def test_host_lifespan_still_runs(self, settings, host, redis_repository):
        events = []

        @asynccontextmanager
        async def host_lifespan(app: FastAPI):
            events.append("startup")
            yield
            events.append("shutdown")

        app = FastAPI(lifespan=host_lifespan)

        @app.get("/page", response_class=HTMLResponse)
        async def page():
            return "<html>page</html>"

        dispatcher = install_page_cache(app, host, settings=settings, backend=redis_repository)

        with TestClient(app) as client:
            first = client.get("/page")
            second = client.get("/page")
            assert app.state.page_cache is not None

        assert events == ["startup", "shutdown"]
        assert dispatcher is app.state.page_cache_events
        assert first.headers[CACHE_STATUS_HEADER] == "MISS (ttl)"
        assert second.headers[CACHE_STATUS_HEADER] == "HIT (ttl)"
