import email
import email.policy
import email.utils
from datetime import datetime
from email.message import Message
from typing import Optional

from mail.errors import MessageParseError
from models.data_models import EmailRecord
from utils.logger import get_logger

logger = get_logger(__name__)


def parse_message(uid: int, raw_bytes: bytes) -> EmailRecord:
    """Parse raw IMAP message bytes into an EmailRecord.

    Extracts:
    - message_id, sender, subject, timestamp
    - HTML body and plain-text body (first of each, attachments skipped)
    - the undecoded body for single-part messages of any other type

    Raises:
        MessageParseError: if the bytes are empty or carry no Message-ID.
    """
    if not raw_bytes:
        raise MessageParseError(f"UID {uid}: empty message")

    msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)

    message_id = str(msg.get("Message-ID", "") or "").strip()
    if not message_id:
        raise MessageParseError(f"UID {uid}: missing Message-ID header")

    sender = str(msg.get("From", "") or "").strip()
    subject = str(msg.get("Subject", "") or "").strip()
    timestamp = _parse_timestamp(str(msg.get("Date", "") or ""))

    html_body = ""
    text_body = ""
    raw_body = ""

    if msg.is_multipart():
        for part in msg.walk():
            if part.is_multipart():
                continue
            disposition = str(part.get("Content-Disposition", ""))
            if "attachment" in disposition:
                continue
            content_type = part.get_content_type()
            if content_type == "text/html" and not html_body:
                html_body = _decode_payload(part)
            elif content_type == "text/plain" and not text_body:
                text_body = _decode_payload(part)
    else:
        content_type = msg.get_content_type()
        if content_type == "text/html":
            html_body = _decode_payload(msg)
        elif content_type == "text/plain":
            text_body = _decode_payload(msg)
        else:
            raw_body = _decode_payload(msg)

    logger.debug(f"Parsed email UID {uid}: subject='{subject}' from='{sender}'")

    return EmailRecord(
        uid=uid,
        message_id=message_id,
        sender=sender,
        subject=subject,
        timestamp=timestamp,
        text_body=text_body,
        html_body=html_body,
        raw_body=raw_body,
    )


def _decode_payload(part: Message) -> str:
    payload = part.get_payload(decode=True) or b""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        # Unknown charset label in the header
        return payload.decode("utf-8", errors="replace")


def _parse_timestamp(date_str: str) -> Optional[datetime]:
    """Parse the Date header. None if missing or unparseable."""
    if not date_str:
        return None
    try:
        return email.utils.parsedate_to_datetime(date_str)
    except (TypeError, ValueError, IndexError):
        return None
