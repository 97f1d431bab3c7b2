"""Tag routes: per-user tag list, create, rename/recolor and delete."""

from __future__ import annotations

from typing import Any

from aiohttp import web

from ...domain.models import TagCreate, TagUpdate
from ..request_helpers import get_user_id, read_json_object


def register_tag_routes(app: web.Application, config: Any, task_store: Any) -> None:
    """Register /api/tags routes.

    Deleting a tag also removes its id from every task of the same user.
    """

    async def list_tags(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        tags = task_store.list_tags(user_id)
        return web.json_response({"tags": [t.to_api_dict() for t in tags]})

    async def create_tag(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        payload = TagCreate.model_validate(await read_json_object(request))
        tag = task_store.add_tag(user_id, payload)
        return web.json_response({"tag": tag.to_api_dict()}, status=201)

    async def update_tag(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        payload = TagUpdate.model_validate(await read_json_object(request))
        tag = task_store.update_tag(user_id, request.match_info["tag_id"], payload)
        return web.json_response({"tag": tag.to_api_dict()})

    async def delete_tag(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        untagged = task_store.delete_tag(user_id, request.match_info["tag_id"])
        return web.json_response({"message": "Tag deleted", "tasksUpdated": untagged})

    app.router.add_get("/api/tags", list_tags)
    app.router.add_post("/api/tags", create_tag)
    app.router.add_patch("/api/tags/{tag_id}", update_tag)
    app.router.add_delete("/api/tags/{tag_id}", delete_tag)
