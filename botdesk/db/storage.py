from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import PersistenceError
from .database import Database
from .models import Chatbot, KnowledgeBaseEntry, ChatInteraction, SystemSetting, utcnow


class Storage:
    """Data access for bots, knowledge base, interactions and settings.

    Every method opens and closes its own session, so callers never hold a
    connection across a vendor call or between metrics ticks.
    """

    def __init__(self, database: Database):
        self.database = database

    # Chatbots

    async def create_chatbot(self, data: Dict[str, Any]) -> Chatbot:
        async with self.database.session() as session:
            bot = Chatbot(
                name=data["name"],
                description=data.get("description") or "",
                settings=data.get("settings") or {},
                wordpress_config=data.get("wordpress_config") or {},
                api_key=data.get("api_key")
            )
            session.add(bot)
            await session.commit()
            await session.refresh(bot)
            return bot

    async def get_chatbot(self, bot_id: int) -> Optional[Chatbot]:
        async with self.database.session() as session:
            return await session.get(Chatbot, bot_id)

    async def list_chatbots(self) -> List[Chatbot]:
        async with self.database.session() as session:
            result = await session.execute(select(Chatbot).order_by(Chatbot.id))
            return list(result.scalars().all())

    async def update_chatbot(self, bot_id: int, changes: Dict[str, Any]) -> Optional[Chatbot]:
        async with self.database.session() as session:
            bot = await session.get(Chatbot, bot_id)
            if bot is None:
                return None
            for field_name in ("name", "description", "settings", "wordpress_config", "api_key"):
                if field_name in changes:
                    setattr(bot, field_name, changes[field_name])
            bot.updated_at = utcnow()
            await session.commit()
            await session.refresh(bot)
            return bot

    async def delete_chatbot(self, bot_id: int) -> bool:
        """Delete a bot together with its knowledge base and interaction history."""
        async with self.database.session() as session:
            bot = await session.get(Chatbot, bot_id)
            if bot is None:
                return False
            await session.execute(delete(KnowledgeBaseEntry).where(KnowledgeBaseEntry.bot_id == bot_id))
            await session.execute(delete(ChatInteraction).where(ChatInteraction.bot_id == bot_id))
            await session.delete(bot)
            await session.commit()
            return True

    # Knowledge base

    async def add_knowledge_base(
        self,
        bot_id: int,
        content: str,
        entry_type: str = "document",
        file_name: Optional[str] = None,
        source_url: Optional[str] = None
    ) -> KnowledgeBaseEntry:
        async with self.database.session() as session:
            entry = KnowledgeBaseEntry(
                bot_id=bot_id,
                type=entry_type,
                content=content,
                file_name=file_name,
                source_url=source_url
            )
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
            return entry

    async def list_knowledge_base(self, bot_id: int) -> List[KnowledgeBaseEntry]:
        async with self.database.session() as session:
            result = await session.execute(
                select(KnowledgeBaseEntry)
                .where(KnowledgeBaseEntry.bot_id == bot_id)
                .order_by(KnowledgeBaseEntry.id)
            )
            return list(result.scalars().all())

    async def delete_knowledge_base(self, entry_id: int) -> bool:
        async with self.database.session() as session:
            entry = await session.get(KnowledgeBaseEntry, entry_id)
            if entry is None:
                return False
            await session.delete(entry)
            await session.commit()
            return True

    # Interaction log

    async def add_interaction(
        self,
        bot_id: int,
        user_message: str,
        bot_response: str,
        model: Optional[str],
        response_time_ms: int,
        success: bool,
        tokens_used: Optional[int] = None,
        error_message: Optional[str] = None
    ) -> ChatInteraction:
        try:
            async with self.database.session() as session:
                interaction = ChatInteraction(
                    bot_id=bot_id,
                    user_message=user_message,
                    bot_response=bot_response,
                    model=model,
                    tokens_used=tokens_used,
                    response_time_ms=response_time_ms,
                    success=success,
                    error_message=error_message
                )
                session.add(interaction)
                await session.commit()
                await session.refresh(interaction)
                return interaction
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record chat interaction: {type(e).__name__} {e}", original_exception=e) from e

    async def list_interactions(
        self,
        bot_id: Optional[int] = None,
        since: Optional[datetime] = None
    ) -> List[ChatInteraction]:
        query = select(ChatInteraction).order_by(ChatInteraction.created_at, ChatInteraction.id)
        if bot_id is not None:
            query = query.where(ChatInteraction.bot_id == bot_id)
        if since is not None:
            query = query.where(ChatInteraction.created_at >= since)

        async with self.database.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    # System settings

    async def get_setting(self, key: str) -> Optional[str]:
        async with self.database.session() as session:
            setting = await session.get(SystemSetting, key)
            return setting.value if setting else None

    async def get_settings(self, prefix: str = "") -> Dict[str, str]:
        async with self.database.session() as session:
            result = await session.execute(
                select(SystemSetting).where(SystemSetting.key.startswith(prefix))
            )
            return {setting.key: setting.value for setting in result.scalars().all()}

    async def set_settings(self, values: Dict[str, str]):
        """Upsert several settings in one transaction."""
        async with self.database.session() as session:
            for key, value in values.items():
                setting = await session.get(SystemSetting, key)
                if setting is None:
                    session.add(SystemSetting(key=key, value=str(value)))
                else:
                    setting.value = str(value)
                    setting.updated_at = utcnow()
            await session.commit()

    async def set_setting(self, key: str, value: str):
        await self.set_settings({key: value})

    async def delete_setting(self, key: str) -> bool:
        async with self.database.session() as session:
            setting = await session.get(SystemSetting, key)
            if setting is None:
                return False
            await session.delete(setting)
            await session.commit()
            return True
