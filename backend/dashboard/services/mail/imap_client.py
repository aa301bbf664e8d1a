"""
IMAP client. imaplib is blocking, so every operation runs in a worker thread
and opens its own connection.

Message ids are ``{mailbox}:{uid}`` so bulk actions can find the mailbox again.
"""
import asyncio
import email
import imaplib
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from email.header import decode_header, make_header
from email.utils import parsedate_to_datetime
from typing import Dict, Iterator, List, Tuple

from dashboard.core.config import get_settings
from dashboard.schemas.mail import MailAddress, MailFolder, MailMessage
from dashboard.services.mail.base import FOLDER_DISPLAY_NAMES, MailClient, parse_address_header
from dashboard.utils.logger import get_logger

logger = get_logger("mail.imap")

MAILBOXES = {
    "inbox": "INBOX",
    "sent": "Sent",
    "drafts": "Drafts",
    "junk": "Junk",
    "trash": "Trash",
    "archive": "Archive",
}
HEADER_FIELDS = "BODY.PEEK[HEADER.FIELDS (FROM TO CC SUBJECT DATE)]"
UID_PATTERN = re.compile(rb"UID (\d+)")
FLAGS_PATTERN = re.compile(rb"FLAGS \(([^)]*)\)")
STATUS_PATTERN = re.compile(rb"(MESSAGES|UNSEEN) (\d+)")


def _decode(value: str) -> str:
    if not value:
        return ""
    return str(make_header(decode_header(value)))


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "").replace('"', "") + '"'


def split_message_id(message_id: str) -> Tuple[str, str]:
    mailbox, _, uid = message_id.rpartition(":")
    return mailbox or "INBOX", uid


def group_by_mailbox(message_ids: List[str]) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = {}
    for message_id in message_ids:
        mailbox, uid = split_message_id(message_id)
        if uid:
            groups.setdefault(mailbox, []).append(uid)
    return groups


class ImapClient(MailClient):
    provider = "imap"

    def __init__(self, account_id: int, access_token: str, username: str):
        super().__init__(account_id, access_token)
        self.username = username
        settings = get_settings()
        self.host = settings.IMAP_HOST
        self.port = settings.IMAP_PORT

    @contextmanager
    def _connect(self) -> Iterator[imaplib.IMAP4_SSL]:
        if not self.host:
            raise ValueError("IMAP_HOST is not configured")
        conn = imaplib.IMAP4_SSL(self.host, self.port)
        try:
            conn.login(self.username, self.access_token)
            yield conn
        finally:
            try:
                conn.logout()
            except imaplib.IMAP4.error as e:
                logger.debug(f"IMAP logout failed: {e}")

    def _status(self, conn: imaplib.IMAP4_SSL, mailbox: str) -> Dict[str, int]:
        typ, data = conn.status(_quote(mailbox), "(MESSAGES UNSEEN)")
        if typ != "OK" or not data or not data[0]:
            return {}
        return {k.decode(): int(v) for k, v in STATUS_PATTERN.findall(data[0])}

    def _parse_fetch(self, mailbox: str, data: list) -> List[MailMessage]:
        messages = []
        for part in data:
            if not isinstance(part, tuple):
                continue
            meta, raw_headers = part
            uid_match = UID_PATTERN.search(meta)
            if not uid_match:
                continue
            flags_match = FLAGS_PATTERN.search(meta)
            flags = flags_match.group(1).decode() if flags_match else ""

            headers = email.message_from_bytes(raw_headers)
            senders = parse_address_header(_decode(headers.get("From", "")))
            try:
                received = parsedate_to_datetime(headers.get("Date", ""))
                if received.tzinfo:
                    received = received.astimezone(timezone.utc).replace(tzinfo=None)
            except (TypeError, ValueError):
                received = datetime.utcnow()

            messages.append(MailMessage(
                id=f"{mailbox}:{uid_match.group(1).decode()}",
                account_id=self.account_id,
                provider="imap",
                subject=_decode(headers.get("Subject", "")) or "(No Subject)",
                from_=senders[0] if senders else MailAddress(email="unknown"),
                to=parse_address_header(_decode(headers.get("To", ""))),
                cc=parse_address_header(_decode(headers.get("Cc", ""))),
                received_at=received,
                is_read="\\Seen" in flags,
            ))
        messages.sort(key=lambda m: m.received_at, reverse=True)
        return messages

    def _fetch_sync(self, folder: str, max_results: int, query: str = None) -> List[MailMessage]:
        mailbox = MAILBOXES.get(folder, "INBOX")
        with self._connect() as conn:
            conn.select(_quote(mailbox), readonly=True)
            if query:
                typ, data = conn.uid("SEARCH", None, "TEXT", _quote(query))
            else:
                typ, data = conn.uid("SEARCH", None, "ALL")
            if typ != "OK" or not data or not data[0]:
                return []
            uids = data[0].split()[-max_results:]
            if not uids:
                return []
            typ, data = conn.uid("FETCH", b",".join(uids).decode(), f"(UID FLAGS {HEADER_FIELDS})")
            if typ != "OK":
                return []
            return self._parse_fetch(mailbox, data)

    def _store_sync(self, message_ids: List[str], op: str, flag: str) -> int:
        count = 0
        with self._connect() as conn:
            for mailbox, uids in group_by_mailbox(message_ids).items():
                conn.select(_quote(mailbox))
                typ, _ = conn.uid("STORE", ",".join(uids), op, flag)
                if typ == "OK":
                    count += len(uids)
        return count

    def _move_sync(self, message_ids: List[str], destination: str) -> int:
        count = 0
        with self._connect() as conn:
            for mailbox, uids in group_by_mailbox(message_ids).items():
                conn.select(_quote(mailbox))
                uid_set = ",".join(uids)
                if mailbox != destination:
                    typ, _ = conn.uid("COPY", uid_set, _quote(destination))
                    if typ != "OK":
                        logger.warning(f"IMAP copy from {mailbox} to {destination} failed")
                        continue
                conn.uid("STORE", uid_set, "+FLAGS", "(\\Deleted)")
                conn.expunge()
                count += len(uids)
        return count

    def _folders_sync(self) -> List[MailFolder]:
        folders = []
        with self._connect() as conn:
            for folder, mailbox in MAILBOXES.items():
                status = self._status(conn, mailbox)
                if not status:
                    continue
                folders.append(MailFolder(
                    id=mailbox,
                    display_name=FOLDER_DISPLAY_NAMES[folder],
                    type=folder,
                    unread_count=status.get("UNSEEN", 0),
                    total_count=status.get("MESSAGES", 0),
                ))
        return folders

    def _unread_sync(self) -> int:
        with self._connect() as conn:
            return self._status(conn, "INBOX").get("UNSEEN", 0)

    def _empty_sync(self, folder: str) -> int:
        with self._connect() as conn:
            typ, data = conn.select(_quote(MAILBOXES[folder]))
            total = int(data[0]) if typ == "OK" and data and data[0] else 0
            if total:
                conn.store("1:*", "+FLAGS", "(\\Deleted)")
                conn.expunge()
            return total

    async def get_unread_count(self) -> int:
        return await asyncio.to_thread(self._unread_sync)

    async def fetch_messages(self, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        return await asyncio.to_thread(self._fetch_sync, folder, max_results)

    async def search_messages(self, query: str, folder: str = "inbox", max_results: int = 50) -> List[MailMessage]:
        return await asyncio.to_thread(self._fetch_sync, folder, max_results, query)

    async def mark_as_read(self, message_ids: List[str]) -> int:
        return await asyncio.to_thread(self._store_sync, message_ids, "+FLAGS", "(\\Seen)")

    async def mark_as_unread(self, message_ids: List[str]) -> int:
        return await asyncio.to_thread(self._store_sync, message_ids, "-FLAGS", "(\\Seen)")

    async def move_to_junk(self, message_ids: List[str]) -> int:
        return await asyncio.to_thread(self._move_sync, message_ids, MAILBOXES["junk"])

    async def delete_messages(self, message_ids: List[str]) -> int:
        return await asyncio.to_thread(self._move_sync, message_ids, MAILBOXES["trash"])

    async def get_folders(self) -> List[MailFolder]:
        return await asyncio.to_thread(self._folders_sync)

    async def empty_folder(self, folder: str) -> int:
        return await asyncio.to_thread(self._empty_sync, folder)
