"""
Chat Service Package

Dispatch of chat turns for configured bots.

Modules:
- statistics_collector: Latency and token accounting for one turn
- chat_service: Validation, provider selection, vendor call and interaction log

Usage:
    from botdesk.services.chat_service import ChatService

    chat_service = ChatService(config_manager, storage, httpx_client, settings_service.get_anthropic_api_key)
    reply = await chat_service.chat(bot_id, {"message": "Hi"}, request_id)
"""

from .statistics_collector import StatisticsCollector
from .chat_service import ChatService, compose_prompt

__all__ = [
    "StatisticsCollector",
    "ChatService",
    "compose_prompt"
]
