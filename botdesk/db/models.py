from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, JSON

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so every column stays naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class Chatbot(Base):
    __tablename__ = "chatbots"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    # initial_message, system_prompt, provider, model, temperature,
    # max_tokens, api_keys{provider: key}, theme{...}
    settings = Column(JSON, nullable=False, default=dict)
    wordpress_config = Column(JSON, nullable=False, default=dict)  # position, custom_css
    api_key = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        settings = dict(self.settings or {})
        # Keys are write-only through the API
        settings["api_keys"] = {
            provider: bool(key) for provider, key in (settings.get("api_keys") or {}).items()
        }
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "settings": settings,
            "wordpress_config": self.wordpress_config or {},
            "has_api_key": bool(self.api_key),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class KnowledgeBaseEntry(Base):
    __tablename__ = "knowledge_base"

    id = Column(Integer, primary_key=True, index=True)
    bot_id = Column(Integer, ForeignKey("chatbots.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False, default="document")  # document | website
    content = Column(Text, nullable=False)
    file_name = Column(String, nullable=True)
    source_url = Column(String, nullable=True)
    uploaded_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "bot_id": self.bot_id,
            "type": self.type,
            "content": self.content,
            "file_name": self.file_name,
            "source_url": self.source_url,
            "uploaded_at": _iso(self.uploaded_at),
        }


class ChatInteraction(Base):
    """One row per chat attempt that reached the vendor call. Append-only."""

    __tablename__ = "chat_interactions"

    id = Column(Integer, primary_key=True, index=True)
    bot_id = Column(Integer, ForeignKey("chatbots.id", ondelete="CASCADE"), nullable=False, index=True)
    user_message = Column(Text, nullable=False)
    bot_response = Column(Text, nullable=False, default="")
    model = Column(String, nullable=True)
    tokens_used = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=False, default=0)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "bot_id": self.bot_id,
            "user_message": self.user_message,
            "bot_response": self.bot_response,
            "model": self.model,
            "tokens_used": self.tokens_used,
            "response_time_ms": self.response_time_ms,
            "success": self.success,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
        }


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
