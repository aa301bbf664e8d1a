from abc import ABC, abstractmethod
from email.utils import getaddresses
from typing import List, Optional

from dashboard.schemas.mail import MailAddress, MailFolder, MailMessage

FOLDER_DISPLAY_NAMES = {
    "inbox": "Inbox",
    "sent": "Sent",
    "drafts": "Drafts",
    "junk": "Junk",
    "trash": "Trash",
    "archive": "Archive",
}


def parse_address_header(value: Optional[str]) -> List[MailAddress]:
    """Splits a From/To/Cc header into addresses."""
    if not value:
        return []
    return [
        MailAddress(name=name or None, email=address)
        for name, address in getaddresses([value])
        if address
    ]


class MailClient(ABC):
    """Provider client for one mail account. Mutations return the number of messages processed."""

    provider: str = ""

    def __init__(self, account_id: int, access_token: str):
        self.account_id = account_id
        self.access_token = access_token

    @abstractmethod
    async def get_unread_count(self) -> int:
        pass

    @abstractmethod
    async def fetch_messages(self, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        pass

    @abstractmethod
    async def mark_as_read(self, message_ids: List[str]) -> int:
        pass

    @abstractmethod
    async def mark_as_unread(self, message_ids: List[str]) -> int:
        pass

    @abstractmethod
    async def move_to_junk(self, message_ids: List[str]) -> int:
        pass

    @abstractmethod
    async def delete_messages(self, message_ids: List[str]) -> int:
        pass

    @abstractmethod
    async def search_messages(self, query: str, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        pass

    @abstractmethod
    async def get_folders(self) -> List[MailFolder]:
        pass

    @abstractmethod
    async def empty_folder(self, folder: str) -> int:
        pass
