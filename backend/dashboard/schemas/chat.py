from pydantic import BaseModel
from typing import List, Optional, Any
from datetime import datetime

class ChatMessageBase(BaseModel):
    role: str
    content: str

class ChatMessageCreate(ChatMessageBase):
    tool_calls: Optional[List[Any]] = None
    tool_results: Optional[List[Any]] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

class ChatMessageResponse(ChatMessageCreate):
    id: int
    conversation_id: int
    created_at: datetime

    class Config:
        from_attributes = True

class ConversationCreate(BaseModel):
    title: Optional[str] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None

class ConversationUpdate(BaseModel):
    title: Optional[str] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None

class ConversationResponse(BaseModel):
    id: int
    user_id: int
    title: Optional[str] = None
    model: str
    system_prompt: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    archived_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ConversationWithMessages(ConversationResponse):
    messages: List[ChatMessageResponse] = []

class ChatSummary(BaseModel):
    recent_conversations: List[ConversationResponse]
    total_conversations: int

class SendMessageRequest(BaseModel):
    message: str

class SendMessageResponse(BaseModel):
    user_message: ChatMessageResponse
    assistant_message: ChatMessageResponse
    cost_cents: int = 0

class AgentRunCreate(BaseModel):
    prompt: str
    model: Optional[str] = None
    system_prompt: Optional[str] = None

class AgentRunResponse(BaseModel):
    id: int
    user_id: int
    prompt: str
    system_prompt: Optional[str] = None
    model: str
    status: str
    result: Optional[str] = None
    error: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AgentTasksSummary(BaseModel):
    recent_runs: List[AgentRunResponse]
    total_runs: int
    running_count: int
    total_cost: float
