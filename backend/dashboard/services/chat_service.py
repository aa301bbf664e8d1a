from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from dashboard.core.model_pricing import DEFAULT_MODEL, calculate_cost, is_free_model
from dashboard.models.chat import ChatConversation, ChatMessage
from dashboard.schemas.chat import ChatMessageCreate, ConversationCreate, ConversationUpdate
from dashboard.services.agent_service import AgentService
from dashboard.services.billing.credits import CreditsService, round_cents
from dashboard.services.openrouter_models import calculate_cost_with_margin, get_profit_margin
from dashboard.utils.logger import get_logger

logger = get_logger("chat_service")

SUMMARY_RECENT_LIMIT = 3


class InsufficientCreditsError(ValueError):
    pass


class ChatService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def _get_owned(self, conversation_id: int) -> ChatConversation:
        result = await self.db.execute(
            select(ChatConversation).where(
                ChatConversation.id == conversation_id,
                ChatConversation.user_id == self.user_id,
            )
        )
        conversation = result.scalar_one_or_none()
        if not conversation:
            raise ValueError("Conversation not found")
        return conversation

    async def get_conversations(self, include_archived: bool = False) -> List[ChatConversation]:
        query = select(ChatConversation).where(ChatConversation.user_id == self.user_id)
        if not include_archived:
            query = query.where(ChatConversation.archived_at.is_(None))
        result = await self.db.execute(query.order_by(ChatConversation.updated_at.desc()))
        return list(result.scalars().all())

    async def get_conversation(self, conversation_id: int) -> ChatConversation:
        result = await self.db.execute(
            select(ChatConversation)
            .options(selectinload(ChatConversation.messages))
            .where(
                ChatConversation.id == conversation_id,
                ChatConversation.user_id == self.user_id,
            )
        )
        conversation = result.scalar_one_or_none()
        if not conversation:
            raise ValueError("Conversation not found")
        return conversation

    async def create_conversation(self, data: Optional[ConversationCreate] = None) -> ChatConversation:
        data = data or ConversationCreate()
        conversation = ChatConversation(
            user_id=self.user_id,
            title=data.title,
            model=data.model or DEFAULT_MODEL,
            system_prompt=data.system_prompt,
        )
        self.db.add(conversation)
        await self.db.commit()
        await self.db.refresh(conversation)
        logger.info(f"Created conversation {conversation.id} for user {self.user_id}")
        return conversation

    async def update_conversation(self, conversation_id: int, data: ConversationUpdate) -> ChatConversation:
        conversation = await self._get_owned(conversation_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(conversation, field, value)
        conversation.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(conversation)
        return conversation

    async def delete_conversation(self, conversation_id: int) -> None:
        conversation = await self._get_owned(conversation_id)
        await self.db.delete(conversation)
        await self.db.commit()

    async def archive_conversation(self, conversation_id: int) -> ChatConversation:
        conversation = await self._get_owned(conversation_id)
        conversation.archived_at = datetime.utcnow()
        await self.db.commit()
        return conversation

    async def unarchive_conversation(self, conversation_id: int) -> ChatConversation:
        conversation = await self._get_owned(conversation_id)
        conversation.archived_at = None
        await self.db.commit()
        return conversation

    async def add_message(self, conversation_id: int, data: ChatMessageCreate) -> ChatMessage:
        conversation = await self._get_owned(conversation_id)
        message = ChatMessage(conversation_id=conversation.id, **data.model_dump())
        self.db.add(message)
        conversation.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_summary(self) -> Tuple[List[ChatConversation], int]:
        total = await self.db.scalar(
            select(func.count()).select_from(ChatConversation).where(ChatConversation.user_id == self.user_id)
        )
        result = await self.db.execute(
            select(ChatConversation)
            .where(ChatConversation.user_id == self.user_id)
            .order_by(ChatConversation.updated_at.desc())
            .limit(SUMMARY_RECENT_LIMIT)
        )
        return list(result.scalars().all()), total or 0

    async def _message_cost_usd(self, model: str, input_tokens: int, output_tokens: int) -> float:
        try:
            return await calculate_cost_with_margin(model, input_tokens, output_tokens)
        except Exception as e:
            logger.warning(f"Live pricing unavailable for {model}, using static table: {e}")
            return calculate_cost(model, input_tokens, output_tokens) * (1 + get_profit_margin())

    async def send_message(self, conversation_id: int, content: str) -> Tuple[ChatMessage, ChatMessage, int]:
        """
        Runs the agent on the conversation and stores both turns.

        Returns (user_message, assistant_message, cost_cents).
        Raises InsufficientCreditsError for paid models when the balance is exhausted.
        """
        conversation = await self._get_owned(conversation_id)
        credits = CreditsService(self.db)

        if not is_free_model(conversation.model) and not await credits.can_use_paid_models(self.user_id):
            raise InsufficientCreditsError("Insufficient credits")

        history_result = await self.db.execute(
            select(ChatMessage)
            .where(
                ChatMessage.conversation_id == conversation.id,
                ChatMessage.role.in_(("user", "assistant")),
            )
            .order_by(ChatMessage.id)
        )
        history = [{"role": m.role, "content": m.content} for m in history_result.scalars().all()]

        user_message = await self.add_message(conversation.id, ChatMessageCreate(role="user", content=content))

        result = await AgentService().run_agent(
            prompt=content,
            model=conversation.model,
            system_prompt=conversation.system_prompt,
            history=history,
        )

        input_tokens = result.usage.prompt_tokens if result.usage else 0
        output_tokens = result.usage.completion_tokens if result.usage else 0

        assistant_message = await self.add_message(
            conversation.id,
            ChatMessageCreate(
                role="assistant",
                content=result.text,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            ),
        )

        cost_cents = 0
        if not is_free_model(conversation.model):
            cost_usd = await self._message_cost_usd(conversation.model, input_tokens, output_tokens)
            cost_cents = round_cents(cost_usd * 100)
            if cost_cents > 0:
                await credits.deduct_credits(
                    self.user_id, cost_cents, "chat_message", reference_id=str(assistant_message.id)
                )

        return user_message, assistant_message, cost_cents
