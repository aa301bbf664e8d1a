import httpx
from datetime import datetime
from typing import List, Optional, Dict, Any

from dashboard.schemas.mail import MailAddress, MailFolder, MailMessage
from dashboard.services.mail.base import FOLDER_DISPLAY_NAMES, MailClient, parse_address_header
from dashboard.utils.logger import get_logger

logger = get_logger("mail.gmail")

FOLDER_LABELS = {
    "inbox": "INBOX",
    "sent": "SENT",
    "drafts": "DRAFT",
    "junk": "SPAM",
    "trash": "TRASH",
}
ARCHIVE_QUERY = "-in:inbox -in:sent -in:drafts -in:spam -in:trash"
BATCH_DELETE_LIMIT = 1000


class GmailClient(MailClient):
    provider = "gmail"
    GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

    def __init__(self, account_id: int, access_token: str):
        super().__init__(account_id, access_token)
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _folder_params(self, folder: str, query: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        q = []
        if folder == "archive":
            q.append(ARCHIVE_QUERY)
        else:
            params["labelIds"] = FOLDER_LABELS.get(folder, "INBOX")
        if query:
            q.append(query)
        if q:
            params["q"] = " ".join(q)
        return params

    async def get_unread_count(self) -> int:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{self.GMAIL_API_URL}/labels/INBOX", headers=self.headers)
            response.raise_for_status()
            return response.json().get("messagesUnread", 0)

    async def _list_messages(self, params: Dict[str, Any], max_results: int) -> List[MailMessage]:
        params = {**params, "maxResults": max_results}
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{self.GMAIL_API_URL}/messages", headers=self.headers, params=params)
            response.raise_for_status()
            messages_meta = response.json().get("messages", [])

            results = []
            for meta in messages_meta:
                detail_resp = await client.get(
                    f"{self.GMAIL_API_URL}/messages/{meta['id']}",
                    headers=self.headers,
                    params={"format": "metadata", "metadataHeaders": ["From", "To", "Cc", "Subject"]},
                )
                if detail_resp.status_code == 200:
                    results.append(self._parse_message(detail_resp.json()))
                else:
                    logger.warning(f"Skipping Gmail message {meta['id']}: HTTP {detail_resp.status_code}")
            return results

    async def fetch_messages(self, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        return await self._list_messages(self._folder_params(folder), max_results)

    async def search_messages(self, query: str, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        return await self._list_messages(self._folder_params(folder, query), max_results)

    def _parse_message(self, data: Dict[str, Any]) -> MailMessage:
        payload = data.get("payload", {})
        headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}
        label_ids = data.get("labelIds", [])
        internal_date = int(data.get("internalDate", 0)) / 1000.0

        senders = parse_address_header(headers.get("from"))
        return MailMessage(
            id=data["id"],
            account_id=self.account_id,
            provider="gmail",
            subject=headers.get("subject") or "(No Subject)",
            from_=senders[0] if senders else MailAddress(email="unknown"),
            to=parse_address_header(headers.get("to")),
            cc=parse_address_header(headers.get("cc")),
            received_at=datetime.utcfromtimestamp(internal_date),
            is_read="UNREAD" not in label_ids,
            has_attachments=payload.get("mimeType") == "multipart/mixed",
            preview=data.get("snippet", ""),
            importance="high" if "IMPORTANT" in label_ids else "normal",
            conversation_id=data.get("threadId"),
        )

    async def _batch_modify(self, message_ids: List[str], add: List[str], remove: List[str]) -> int:
        if not message_ids:
            return 0
        payload = {"ids": message_ids, "addLabelIds": add, "removeLabelIds": remove}
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.GMAIL_API_URL}/messages/batchModify", headers=self.headers, json=payload
            )
            response.raise_for_status()
        return len(message_ids)

    async def mark_as_read(self, message_ids: List[str]) -> int:
        return await self._batch_modify(message_ids, [], ["UNREAD"])

    async def mark_as_unread(self, message_ids: List[str]) -> int:
        return await self._batch_modify(message_ids, ["UNREAD"], [])

    async def move_to_junk(self, message_ids: List[str]) -> int:
        return await self._batch_modify(message_ids, ["SPAM"], ["INBOX"])

    async def delete_messages(self, message_ids: List[str]) -> int:
        """Moves messages to Trash; Gmail purges them after 30 days."""
        count = 0
        async with httpx.AsyncClient() as client:
            for mid in message_ids:
                response = await client.post(f"{self.GMAIL_API_URL}/messages/{mid}/trash", headers=self.headers)
                if response.status_code == 200:
                    count += 1
                else:
                    logger.warning(f"Failed to trash Gmail message {mid}: HTTP {response.status_code}")
        return count

    async def get_folders(self) -> List[MailFolder]:
        folders = []
        async with httpx.AsyncClient() as client:
            for folder, label in FOLDER_LABELS.items():
                response = await client.get(f"{self.GMAIL_API_URL}/labels/{label}", headers=self.headers)
                response.raise_for_status()
                data = response.json()
                folders.append(MailFolder(
                    id=label,
                    display_name=FOLDER_DISPLAY_NAMES[folder],
                    type=folder,
                    unread_count=data.get("messagesUnread", 0),
                    total_count=data.get("messagesTotal", 0),
                ))
        return folders

    async def empty_folder(self, folder: str) -> int:
        label = FOLDER_LABELS[folder]
        ids: List[str] = []
        async with httpx.AsyncClient() as client:
            params: Dict[str, Any] = {"labelIds": label, "maxResults": 500}
            while True:
                response = await client.get(f"{self.GMAIL_API_URL}/messages", headers=self.headers, params=params)
                response.raise_for_status()
                data = response.json()
                ids.extend(m["id"] for m in data.get("messages", []))
                if not data.get("nextPageToken"):
                    break
                params["pageToken"] = data["nextPageToken"]

            for start in range(0, len(ids), BATCH_DELETE_LIMIT):
                chunk = ids[start:start + BATCH_DELETE_LIMIT]
                response = await client.post(
                    f"{self.GMAIL_API_URL}/messages/batchDelete", headers=self.headers, json={"ids": chunk}
                )
                response.raise_for_status()
        return len(ids)
