import httpx
from datetime import datetime
from typing import List, Dict, Any

from dashboard.schemas.mail import MailAddress, MailFolder, MailMessage
from dashboard.services.mail.base import FOLDER_DISPLAY_NAMES, MailClient
from dashboard.utils.logger import get_logger

logger = get_logger("mail.outlook")

WELL_KNOWN_FOLDERS = {
    "inbox": "inbox",
    "sent": "sentitems",
    "drafts": "drafts",
    "junk": "junkemail",
    "trash": "deleteditems",
    "archive": "archive",
}
MESSAGE_FIELDS = "id,subject,from,toRecipients,ccRecipients,receivedDateTime,isRead,hasAttachments,bodyPreview,importance,conversationId"


def _address(data: Dict[str, Any]) -> MailAddress:
    email = data.get("emailAddress", {})
    return MailAddress(name=email.get("name") or None, email=email.get("address") or "unknown")


class OutlookClient(MailClient):
    provider = "outlook"
    GRAPH_API_URL = "https://graph.microsoft.com/v1.0"

    def __init__(self, account_id: int, access_token: str):
        super().__init__(account_id, access_token)
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Prefer": "outlook.timezone=\"UTC\"",
        }

    def _folder_url(self, folder: str) -> str:
        return f"{self.GRAPH_API_URL}/me/mailFolders/{WELL_KNOWN_FOLDERS.get(folder, 'inbox')}"

    async def get_unread_count(self) -> int:
        async with httpx.AsyncClient() as client:
            response = await client.get(self._folder_url("inbox"), headers=self.headers)
            response.raise_for_status()
            return response.json().get("unreadItemCount", 0)

    async def _get_messages(self, folder: str, params: Dict[str, Any]) -> List[MailMessage]:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{self._folder_url(folder)}/messages", headers=self.headers, params=params)
            response.raise_for_status()
            return [self._parse_message(item) for item in response.json().get("value", [])]

    async def fetch_messages(self, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        params = {
            "$top": max_results,
            "$select": MESSAGE_FIELDS,
            "$orderby": "receivedDateTime desc",
        }
        return await self._get_messages(folder, params)

    async def search_messages(self, query: str, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        # $search cannot be combined with $orderby
        terms = query.replace('"', "")
        params = {
            "$top": max_results,
            "$select": MESSAGE_FIELDS,
            "$search": f'"{terms}"',
        }
        return await self._get_messages(folder, params)

    def _parse_message(self, data: Dict[str, Any]) -> MailMessage:
        importance = (data.get("importance") or "normal").lower()
        return MailMessage(
            id=data["id"],
            account_id=self.account_id,
            provider="outlook",
            subject=data.get("subject") or "(No Subject)",
            from_=_address(data.get("from") or {}),
            to=[_address(r) for r in data.get("toRecipients", [])],
            cc=[_address(r) for r in data.get("ccRecipients", [])],
            received_at=datetime.fromisoformat(data["receivedDateTime"].replace("Z", "+00:00")).replace(tzinfo=None),
            is_read=data.get("isRead", True),
            has_attachments=data.get("hasAttachments", False),
            preview=data.get("bodyPreview", ""),
            importance=importance if importance in ("low", "normal", "high") else "normal",
            conversation_id=data.get("conversationId"),
        )

    async def _set_read(self, message_ids: List[str], is_read: bool) -> int:
        count = 0
        async with httpx.AsyncClient() as client:
            for mid in message_ids:
                response = await client.patch(
                    f"{self.GRAPH_API_URL}/me/messages/{mid}", headers=self.headers, json={"isRead": is_read}
                )
                if response.status_code == 200:
                    count += 1
                else:
                    logger.warning(f"Failed to update Outlook message {mid}: HTTP {response.status_code}")
        return count

    async def mark_as_read(self, message_ids: List[str]) -> int:
        return await self._set_read(message_ids, True)

    async def mark_as_unread(self, message_ids: List[str]) -> int:
        return await self._set_read(message_ids, False)

    async def move_to_junk(self, message_ids: List[str]) -> int:
        count = 0
        async with httpx.AsyncClient() as client:
            for mid in message_ids:
                response = await client.post(
                    f"{self.GRAPH_API_URL}/me/messages/{mid}/move",
                    headers=self.headers,
                    json={"destinationId": "junkemail"},
                )
                if response.status_code == 201:
                    count += 1
        return count

    async def delete_messages(self, message_ids: List[str]) -> int:
        count = 0
        async with httpx.AsyncClient() as client:
            for mid in message_ids:
                response = await client.delete(f"{self.GRAPH_API_URL}/me/messages/{mid}", headers=self.headers)
                if response.status_code == 204:
                    count += 1
        return count

    async def get_folders(self) -> List[MailFolder]:
        folders = []
        async with httpx.AsyncClient() as client:
            for folder in WELL_KNOWN_FOLDERS:
                response = await client.get(self._folder_url(folder), headers=self.headers)
                if response.status_code == 404:
                    continue
                response.raise_for_status()
                data = response.json()
                folders.append(MailFolder(
                    id=data.get("id", folder),
                    display_name=data.get("displayName") or FOLDER_DISPLAY_NAMES[folder],
                    type=folder,
                    unread_count=data.get("unreadItemCount", 0),
                    total_count=data.get("totalItemCount", 0),
                ))
        return folders

    async def empty_folder(self, folder: str) -> int:
        ids: List[str] = []
        async with httpx.AsyncClient() as client:
            url = f"{self._folder_url(folder)}/messages"
            params: Dict[str, Any] = {"$top": 100, "$select": "id"}
            while url:
                response = await client.get(url, headers=self.headers, params=params)
                response.raise_for_status()
                data = response.json()
                ids.extend(item["id"] for item in data.get("value", []))
                url = data.get("@odata.nextLink")
                params = None
        return await self.delete_messages(ids)
