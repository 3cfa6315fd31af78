from typing import Any, Dict, List, Optional

from ..core.exceptions import ValidationError, NotFoundError
from ..core.logging import logger
from ..db.storage import Storage

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class KnowledgeBaseService:
    """Uploaded documents whose text is prepended to chat prompts."""

    def __init__(self, storage: Storage, max_upload_bytes: int = MAX_UPLOAD_BYTES):
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes

    async def _require_bot(self, bot_id: int):
        if await self.storage.get_chatbot(bot_id) is None:
            raise NotFoundError(f"Chatbot {bot_id} not found", resource_id=bot_id)

    async def add_document(self, bot_id: int, file_name: Optional[str], data: bytes) -> Dict[str, Any]:
        if not data:
            raise ValidationError("No file uploaded", field_name="file")
        if len(data) > self.max_upload_bytes:
            raise ValidationError(
                f"File exceeds {self.max_upload_bytes // (1024 * 1024)} MB",
                field_name="file"
            )
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("File must be UTF-8 text", field_name="file")

        await self._require_bot(bot_id)
        entry = await self.storage.add_knowledge_base(
            bot_id=bot_id,
            content=content,
            entry_type="document",
            file_name=file_name
        )
        logger.info(f"Knowledge base entry added for chatbot {bot_id}", extra_fields={
            "bot_id": bot_id,
            "entry_id": entry.id,
            "file_name": file_name,
            "size_bytes": len(data)
        })
        return entry.to_dict()

    async def list_entries(self, bot_id: int) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in await self.storage.list_knowledge_base(bot_id)]

    async def delete_entry(self, entry_id: int):
        if not await self.storage.delete_knowledge_base(entry_id):
            raise NotFoundError(
                f"Knowledge base entry {entry_id} not found",
                resource="knowledge_base",
                resource_id=entry_id
            )
        logger.info(f"Knowledge base entry deleted: {entry_id}", extra_fields={"entry_id": entry_id})
