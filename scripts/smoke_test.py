"""
Integration smoke test for the resource proxy.

This script spins up:
1. A mock upstream (Starlette) exposing the /posts endpoints the proxy
   forwards to.
2. The resource proxy itself, served by uvicorn and pointed at the mock.
3. An httpx client that exercises the inbound routes and prints the responses.

Usage:
    python scripts/smoke_test.py

The script exits with code 0 if the end-to-end flow works. Use Ctrl+C to abort.
"""

import asyncio
import itertools
import os
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

import httpx
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from resource_proxy.routes import API_PREFIX, build_app
from resource_proxy.settings import Settings

MOCK_SERVICE_HOST = "127.0.0.1"
MOCK_SERVICE_PORT = 9070
PROXY_HOST = "127.0.0.1"
PROXY_PORT = 18080


@dataclass
class MockPostStore:
    """In-memory stand-in for the upstream's posts collection."""

    posts: dict[int, dict[str, Any]] = field(default_factory=dict)
    ids: itertools.count = field(default_factory=lambda: itertools.count(101))

    def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        post = {**payload, "id": next(self.ids)}
        self.posts[post["id"]] = post
        return post


async def posts_endpoint(request: Request) -> JSONResponse:
    store: MockPostStore = request.app.state.posts
    if request.method == "GET":
        user_id = request.query_params.get("userId")
        posts = [
            post
            for post in store.posts.values()
            if user_id is None or str(post.get("userId")) == user_id
        ]
        return JSONResponse(posts)

    if request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        payload = dict(parse_qsl((await request.body()).decode()))
    else:
        payload = await request.json()
    return JSONResponse(store.create(payload), status_code=201)


async def post_endpoint(request: Request) -> Response:
    store: MockPostStore = request.app.state.posts
    post_id = request.path_params["post_id"]
    post = store.posts.get(post_id)
    if post is None:
        return JSONResponse({}, status_code=404)
    if request.method == "DELETE":
        del store.posts[post_id]
        return JSONResponse({})
    if request.method in ("PUT", "PATCH"):
        updates = await request.json()
        post = {**post, **updates, "id": post_id} if request.method == "PATCH" else {**updates, "id": post_id}
        store.posts[post_id] = post
    return JSONResponse(post)


def build_mock_service() -> Starlette:
    app = Starlette(
        routes=[
            Route("/posts", posts_endpoint, methods=["GET", "POST"]),
            Route("/posts/{post_id:int}", post_endpoint, methods=["GET", "PUT", "PATCH", "DELETE"]),
        ],
    )
    app.state.posts = MockPostStore()
    return app


async def run_uvicorn_app(app: Starlette, host: str, port: int) -> uvicorn.Server:
    config = uvicorn.Config(app, host=host, port=port, log_level="error")
    server = uvicorn.Server(config)

    async def _serve() -> None:
        await server.serve()

    asyncio.create_task(_serve())
    # Give the server a moment to bind the port.
    await asyncio.sleep(0.3)
    return server


async def run_smoke_flow() -> None:
    print("Starting mock upstream service...")
    mock_server = await run_uvicorn_app(build_mock_service(), MOCK_SERVICE_HOST, MOCK_SERVICE_PORT)

    os.environ["EXTERNAL_API_BASE_URL"] = f"http://{MOCK_SERVICE_HOST}:{MOCK_SERVICE_PORT}"
    os.environ["SERVER_PORT"] = str(PROXY_PORT)
    settings = Settings.load()

    print("Starting resource proxy...")
    proxy_server = await run_uvicorn_app(build_app(settings), PROXY_HOST, PROXY_PORT)

    base_url = f"http://{PROXY_HOST}:{PROXY_PORT}{API_PREFIX}"
    try:
        async with httpx.AsyncClient(base_url=base_url) as client:
            created = await client.post(
                "/resources",
                json={"name": "John Doe", "email": "john@example.com", "message": "Test"},
            )
            print("create:", created.status_code, created.json())
            resource_id = created.json()["id"]

            fetched = await client.get(f"/resources/{resource_id}")
            print("get:", fetched.status_code, fetched.json())

            patched = await client.patch(f"/resources/{resource_id}", json={"status": "read"})
            print("patch:", patched.status_code, patched.json())

            full = await client.get(f"/resources/{resource_id}/full-response")
            print("full-response:", full.status_code, full.json())

            deleted = await client.delete(f"/resources/{resource_id}")
            print("delete:", deleted.status_code)

            missing = await client.get(f"/resources/{resource_id}")
            print("get after delete:", missing.status_code, missing.json())
            if missing.status_code != 404:
                raise SystemExit("Expected a 404 envelope after delete.")

            print("Smoke test succeeded")
    finally:
        print("Stopping resource proxy...")
        proxy_server.should_exit = True
        print("Stopping mock upstream service...")
        mock_server.should_exit = True
        await asyncio.sleep(0.2)


if __name__ == "__main__":
    try:
        asyncio.run(run_smoke_flow())
    except KeyboardInterrupt:
        print("Smoke test interrupted.")
