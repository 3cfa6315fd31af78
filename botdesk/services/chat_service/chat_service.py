"""
Chat Service Module

This module provides the ChatService class that dispatches one chat turn for
a bot: it validates the message, loads the bot and its knowledge base, picks
the vendor adapter and credential, makes a single vendor call and records
the outcome in the interaction log.

The turn moves through these stages, with no retries:
- Validating: message and bot id checks, no side effects on failure
- ResolvingBot: unknown bots are rejected before anything is logged
- BuildingContext: knowledge base entries joined in storage order
- SelectingProvider: stored provider (or model classification) and key
- Invoking: one vendor call bounded by the configured timeout
- Persisting: exactly one interaction row, success or failure
- Responding: ``{"response": text}`` or a 500 with scrubbed details
"""

import asyncio
import httpx
from typing import Dict, Any, List, Optional, Tuple

from ...core.config_manager import ConfigManager
from ...core.error_handling import ErrorHandler, ErrorContext, ErrorType
from ...core.exceptions import ValidationError, NotFoundError, ProviderError
from ...core.logging import logger
from ...core.sanitizer import CredentialSanitizer
from ...db.models import Chatbot
from ...db.storage import Storage
from ...providers import (
    BaseProvider,
    ChatConfig,
    ChatResult,
    CredentialResolver,
    KeyGetter,
    ProviderType,
    get_provider_instance,
    resolve_provider,
)
from .statistics_collector import StatisticsCollector

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048


def compose_prompt(system_prompt: str, context: str, message: str) -> str:
    """Build the single user message sent to the vendor.

    The context segment is left out entirely when there is no knowledge base.
    """
    parts = [f"Sistema: {system_prompt}"]
    if context:
        parts.append(f"Contexto: {context}")
    parts.append(f"Usuário: {message}")
    return "\n\n".join(parts)


class ChatService:
    """
    Dispatcher for ``POST /api/chat/{bot_id}``.

    Attributes:
        config_manager (ConfigManager): Source of message limits, timeouts,
            provider settings and the unknown-model fallback
        storage (Storage): Bot, knowledge base and interaction access
        httpx_client (httpx.AsyncClient): Shared client for vendor calls
        credential_resolver (CredentialResolver): Picks bot-specific keys
        anthropic_key_getter (KeyGetter): Reads the stored default
            Anthropic key when a bot carries none
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        storage: Storage,
        httpx_client: httpx.AsyncClient,
        anthropic_key_getter: Optional[KeyGetter] = None,
        credential_resolver: Optional[CredentialResolver] = None
    ):
        self.config_manager = config_manager
        self.storage = storage
        self.httpx_client = httpx_client
        self.anthropic_key_getter = anthropic_key_getter
        self.credential_resolver = credential_resolver or CredentialResolver()

    def _validate(self, bot_id: Any, body: Any) -> Tuple[int, str]:
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        message = body.get("message")
        if not isinstance(message, str) or not message:
            raise ValidationError(ErrorType.MISSING_REQUIRED_FIELD.format_message(field_name="message"), field_name="message")

        max_length = self.config_manager.max_message_length
        if len(message) > max_length:
            raise ValidationError(ErrorType.MESSAGE_TOO_LONG.format_message(max_length=max_length), field_name="message")

        try:
            parsed_id = int(str(bot_id).strip())
        except (TypeError, ValueError):
            raise ValidationError(ErrorType.INVALID_BOT_ID.format_message(), field_name="bot_id")

        return parsed_id, message

    def _select_provider(self, bot: Chatbot, settings: Dict[str, Any]) -> Tuple[BaseProvider, Optional[str]]:
        model = settings.get("model")
        provider_type = resolve_provider(settings, self.config_manager.fallback_provider)
        if provider_type is None:
            raise ProviderError(
                f"No provider available for model '{model}'",
                provider_name=ProviderType.UNKNOWN.value
            )

        api_key = self.credential_resolver.resolve(bot, provider_type)
        key_getter = self.anthropic_key_getter if provider_type is ProviderType.ANTHROPIC else None

        provider = get_provider_instance(
            provider_type,
            self.config_manager.provider_config(provider_type.value),
            self.httpx_client,
            key_getter
        )
        return provider, api_key

    @staticmethod
    def _chat_config(settings: Dict[str, Any], api_key: Optional[str], request_id: str) -> ChatConfig:
        try:
            temperature = float(settings.get("temperature", DEFAULT_TEMPERATURE))
        except (TypeError, ValueError):
            temperature = DEFAULT_TEMPERATURE
        try:
            max_tokens = int(settings.get("max_tokens") or DEFAULT_MAX_TOKENS)
        except (TypeError, ValueError):
            max_tokens = DEFAULT_MAX_TOKENS

        return ChatConfig(
            temperature=min(max(temperature, 0.0), 1.0),
            max_output_tokens=max_tokens,
            model=settings.get("model") or None,
            api_key=api_key,
            request_id=request_id
        )

    async def _invoke(self, provider: BaseProvider, messages: List[Dict[str, str]], config: ChatConfig) -> ChatResult:
        timeout = self.config_manager.chat_timeout_seconds
        try:
            return await asyncio.wait_for(provider.chat(messages, config), timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"{provider.name} did not respond within {timeout} seconds",
                provider_name=provider.name,
                original_exception=e
            ) from e
        except ProviderError:
            raise
        except Exception as e:
            # Adapter bugs on unexpected reply shapes still count as vendor failures
            raise ProviderError(
                f"Malformed response from {provider.name}: {type(e).__name__} {e}",
                provider_name=provider.name,
                original_exception=e
            ) from e

    async def _persist(self, request_id: str, **interaction):
        """Write the interaction row; failures are logged and never surface to the client."""
        try:
            await self.storage.add_interaction(**interaction)
        except Exception as e:
            logger.error(
                f"Chat interaction was not recorded: {e}",
                exc_info=True,
                extra_fields={"request_id": request_id, "bot_id": interaction.get("bot_id")}
            )

    async def chat(self, bot_id: Any, body: Any, request_id: str = "unknown", client_host: Optional[str] = None) -> Dict[str, str]:
        """
        Process one chat turn.

        Args:
            bot_id: Raw bot id from the URL path
            body: Parsed JSON body, expected ``{"message": str}``
            request_id: Id assigned by the request logger middleware
            client_host: Client address, for logs only

        Returns:
            ``{"response": text}`` on success

        Raises:
            HTTPException: 400 on invalid input, 404 on unknown bot,
                500 when the vendor call failed
        """
        statistics = StatisticsCollector()
        statistics.start_timing()
        context = ErrorContext(request_id=request_id, client_host=client_host)

        try:
            parsed_id, message = self._validate(bot_id, body)
        except ValidationError as e:
            raise ErrorHandler.handle_validation_error(e, context)
        context.bot_id = parsed_id

        bot = await self.storage.get_chatbot(parsed_id)
        if bot is None:
            raise ErrorHandler.handle_not_found(
                NotFoundError(f"Chatbot {parsed_id} not found", resource_id=parsed_id), context
            )

        entries = await self.storage.list_knowledge_base(parsed_id)
        knowledge_context = "\n\n".join(entry.content for entry in entries)

        settings = bot.settings or {}
        model = settings.get("model")
        context.model_id = model

        logger.request(
            operation="Chat Request",
            request_id=request_id,
            bot_id=parsed_id,
            model_id=model,
            knowledge_base_entries=len(entries)
        )

        prompt = compose_prompt(settings.get("system_prompt") or "", knowledge_context, message)
        logger.debug_data(
            title="Chat Prompt",
            data={"bot_id": parsed_id, "prompt": prompt},
            request_id=request_id,
            component="chat_service",
            data_flow="to_provider"
        )

        result: Optional[ChatResult] = None
        failure: Optional[ProviderError] = None
        api_key: Optional[str] = None

        try:
            provider, api_key = self._select_provider(bot, settings)
            context.provider_name = provider.name
            config = self._chat_config(settings, api_key, request_id)
            result = await self._invoke(provider, [{"role": "user", "content": prompt}], config)
        except ProviderError as e:
            failure = e
        finally:
            statistics.mark_call_complete(result.tokens_used if result else None)

        call_statistics = statistics.get_statistics()
        response_time_ms = call_statistics["response_time_ms"]
        if failure is None:
            interaction = dict(
                bot_response=result.content,
                model=result.model or model,
                tokens_used=call_statistics["tokens_used"],
                success=True,
                error_message=None
            )
        else:
            interaction = dict(
                bot_response="",
                model=model,
                tokens_used=None,
                success=False,
                error_message=CredentialSanitizer.scrub(failure.message, [api_key])
            )

        # Shielded so a client disconnect cannot drop the audit row
        await asyncio.shield(self._persist(
            request_id,
            bot_id=parsed_id,
            user_message=message,
            response_time_ms=response_time_ms,
            **interaction
        ))

        if failure is not None:
            logger.response(
                operation="Chat Failed",
                request_id=request_id,
                status_code=500,
                processing_time_ms=response_time_ms,
                bot_id=parsed_id,
                provider_name=context.provider_name
            )
            raise ErrorHandler.handle_provider_failure(failure, context, secrets=[api_key])

        logger.response(
            operation="Chat Completed",
            request_id=request_id,
            status_code=200,
            processing_time_ms=response_time_ms,
            bot_id=parsed_id,
            provider_name=context.provider_name,
            tokens_used=call_statistics["tokens_used"]
        )
        return {"response": result.content}
