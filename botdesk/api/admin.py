"""
Administration routes: chatbot configuration, knowledge base, per-bot
analytics and system settings.
"""

from typing import Any

from fastapi import APIRouter, Request, File, Form, UploadFile

from ..core.exceptions import ValidationError, NotFoundError
from ..core.logging import logger

router = APIRouter()


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")


# Chatbots

@router.post("/api/chatbots")
async def create_chatbot(request: Request):
    return await request.app.state.bot_service.create(await _json_body(request))


@router.get("/api/chatbots")
async def list_chatbots(request: Request):
    return await request.app.state.bot_service.list()


@router.get("/api/chatbots/{bot_id}")
async def get_chatbot(bot_id: int, request: Request):
    return await request.app.state.bot_service.get(bot_id)


@router.patch("/api/chatbots/{bot_id}")
async def update_chatbot(bot_id: int, request: Request):
    return await request.app.state.bot_service.update(bot_id, await _json_body(request))


@router.delete("/api/chatbots/{bot_id}")
async def delete_chatbot(bot_id: int, request: Request):
    await request.app.state.bot_service.delete(bot_id)
    return {"success": True}


# Analytics

@router.get("/api/analytics/{bot_id}")
async def bot_analytics(bot_id: int, request: Request):
    if await request.app.state.storage.get_chatbot(bot_id) is None:
        raise NotFoundError(f"Chatbot {bot_id} not found", resource_id=bot_id)
    return await request.app.state.analytics_service.bot_analytics(bot_id)


# Knowledge base

@router.post("/api/knowledge-base")
async def upload_knowledge_base(
    request: Request,
    file: UploadFile = File(...),
    bot_id: int = Form(...)
):
    service = request.app.state.knowledge_base_service
    # One byte over the limit is enough to reject
    data = await file.read(service.max_upload_bytes + 1)
    logger.info("Knowledge base upload received", extra_fields={
        "request_id": getattr(request.state, "request_id", None),
        "bot_id": bot_id,
        "file_name": file.filename,
        "content_type": file.content_type
    })
    return await service.add_document(bot_id, file.filename, data)


@router.get("/api/knowledge-base/{bot_id}")
async def list_knowledge_base(bot_id: int, request: Request):
    return await request.app.state.knowledge_base_service.list_entries(bot_id)


@router.delete("/api/knowledge-base/entry/{entry_id}")
async def delete_knowledge_base_entry(entry_id: int, request: Request):
    await request.app.state.knowledge_base_service.delete_entry(entry_id)
    return {"success": True}


# System settings

@router.get("/api/admin/settings")
async def get_admin_settings(request: Request):
    return await request.app.state.settings_service.get_admin_settings()


@router.put("/api/admin/settings")
async def update_admin_settings(request: Request):
    body = await _json_body(request)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    rate_limits = body.get("rate_limits")
    if rate_limits is not None and not (
        isinstance(rate_limits, dict) and all(isinstance(rule, dict) for rule in rate_limits.values())
    ):
        raise ValidationError("rate_limits must map route classes to {window_ms, max}", field_name="rate_limits")

    anthropic_api_key = body.get("anthropic_api_key")
    if anthropic_api_key is not None and not isinstance(anthropic_api_key, str):
        raise ValidationError("anthropic_api_key must be a string", field_name="anthropic_api_key")

    return await request.app.state.settings_service.update_admin_settings(
        rate_limits=rate_limits,
        anthropic_api_key=anthropic_api_key
    )
