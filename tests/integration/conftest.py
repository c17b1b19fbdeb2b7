"""
Integration fixtures: a small host site wired through create_app.
"""

from dataclasses import dataclass, field
from typing import Dict, List

import pytest
from fastapi import FastAPI, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse

from pagecache.main import create_app


@dataclass
class Site:
    """Host application plus per-route render counters."""

    app: FastAPI
    renders: Dict[str, int] = field(default_factory=dict)
    timeline: List[str] = field(default_factory=list)

    def rendered(self, name: str) -> None:
        self.renders[name] = self.renders.get(name, 0) + 1


def add_host_routes(site: Site, host) -> None:
    app = site.app

    @app.get("/", response_class=HTMLResponse)
    async def home():
        site.rendered("home")
        return "<html>home</html>"

    @app.get("/hello", response_class=HTMLResponse)
    async def hello():
        site.rendered("hello")
        return "<html>hello</html>"

    @app.get("/2024/hello-world", response_class=HTMLResponse)
    async def post():
        site.rendered("post")
        return "<html>post 42</html>"

    @app.get("/feed.json")
    async def feed():
        site.rendered("feed")
        return JSONResponse({"items": []})

    @app.get("/greeting", response_class=HTMLResponse)
    async def greeting():
        site.rendered("greeting")
        response = HTMLResponse("<html>welcome back</html>")
        response.set_cookie("seen", "1")
        return response

    @app.get("/gone", response_class=HTMLResponse)
    async def gone():
        site.rendered("gone")
        return HTMLResponse("<html>not found</html>", status_code=404)

    @app.get("/empty", response_class=HTMLResponse)
    async def empty():
        site.rendered("empty")
        return ""

    @app.get("/boom", response_class=HTMLResponse)
    async def boom():
        site.rendered("boom")
        raise RuntimeError("template exploded")

    @app.get("/xhtml-page")
    async def xhtml_page():
        site.rendered("xhtml")
        return Response("<html/>", media_type="application/xhtml+xml")

    @app.get("/admin/dashboard", response_class=HTMLResponse)
    async def dashboard():
        site.rendered("dashboard")
        return "<html>dashboard</html>"

    @app.get("/pages/{slug:path}", response_class=HTMLResponse)
    async def any_page(slug: str):
        site.rendered("pages")
        return f"<html>page for /pages/{slug}</html>"

    @app.get("/events")
    async def events():
        site.rendered("events")

        async def stream():
            for index in range(3):
                site.timeline.append(f"chunk{index}")
                yield f"data: {index}\n\n"

        return StreamingResponse(stream(), media_type="text/event-stream")

    @app.post("/publish/{entity_id}")
    async def publish(entity_id: str, request: Request):
        await request.app.state.page_cache_events.on_content_published(entity_id)
        return {"published": entity_id}

    @app.post("/delete/{entity_id}")
    async def delete(entity_id: str, request: Request):
        snapshot = await host.get_entity(entity_id)
        canonical = await host.resolve_canonical_url(snapshot)
        host.entities.pop(entity_id)
        host.canonical.pop(entity_id)
        await request.app.state.page_cache_events.on_content_deleted(
            entity_id, entity=snapshot, canonical_url=canonical
        )
        return {"deleted": entity_id}


@pytest.fixture
def make_site(settings, host):
    def factory(backend=None) -> Site:
        site = Site(app=create_app(host, settings=settings, backend=backend))
        add_host_routes(site, host)
        return site

    return factory
