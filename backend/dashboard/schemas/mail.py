from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import datetime

MailProvider = Literal["outlook", "gmail", "imap"]
MailFolderType = Literal["inbox", "sent", "drafts", "junk", "trash", "archive"]
BulkActionType = Literal["markRead", "markUnread", "moveToJunk", "delete"]

class MailAddress(BaseModel):
    name: Optional[str] = None
    email: str

class MailMessage(BaseModel):
    id: str
    account_id: int
    provider: MailProvider
    subject: str
    from_: MailAddress = Field(alias="from")
    to: List[MailAddress] = []
    cc: List[MailAddress] = []
    received_at: datetime
    is_read: bool
    has_attachments: bool = False
    preview: str = ""
    importance: Optional[Literal["low", "normal", "high"]] = None
    conversation_id: Optional[str] = None

    model_config = {"populate_by_name": True}

class MailFolder(BaseModel):
    id: str
    display_name: str
    type: MailFolderType
    unread_count: int = 0
    total_count: int = 0

class MailAccountCreate(BaseModel):
    provider: MailProvider
    account_name: str
    email_address: str
    is_enabled: bool = True
    sync_frequency_minutes: int = 5

class MailAccountUpdate(BaseModel):
    account_name: Optional[str] = None
    email_address: Optional[str] = None
    is_enabled: Optional[bool] = None
    sync_frequency_minutes: Optional[int] = None

class MailAccountResponse(BaseModel):
    id: int
    user_id: int
    provider: str
    account_name: str
    email_address: str
    is_enabled: bool
    sync_frequency_minutes: int
    last_synced_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class ImapCredentials(BaseModel):
    password: str

class MailAccountSummary(BaseModel):
    account_id: int
    account_name: str
    provider: str
    email_address: str
    unread_count: int
    total_count: int = 0
    last_synced_at: Optional[datetime] = None

class MailSummary(BaseModel):
    accounts: List[MailAccountSummary] = []
    total_unread: int = 0

class MessagesResponse(BaseModel):
    messages: List[MailMessage]
    has_more: bool

class BulkActionRequest(BaseModel):
    accountId: Optional[int] = None
    messageIds: List[str] = []
    action: Optional[BulkActionType] = None

class BulkActionResult(BaseModel):
    success: bool
    processedCount: int
    failedCount: int

class SearchRequest(BaseModel):
    accountId: Optional[int] = None
    query: Optional[str] = None
    folder: MailFolderType = "inbox"
    maxResults: int = 50

class EmptyFolderResult(BaseModel):
    success: bool
    deletedCount: int
