from typing import Iterable, Optional

from imapclient import IMAPClient

from mail.message_parser import parse_message
from models.data_models import EmailRecord
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = 100
DEFAULT_BATCH_SIZE = 20


class BatchFetcher:
    """Runs the search queries and pulls matching messages in small batches.

    Individual query and message failures are logged (and appended to the
    caller's warnings list when one is given) and never stop the run.
    """

    def __init__(self, limit: int = DEFAULT_LIMIT, batch_size: int = DEFAULT_BATCH_SIZE):
        self.limit = limit
        self.batch_size = max(1, batch_size)

    def search(
        self,
        client: IMAPClient,
        criteria: Iterable[list[str]],
        warnings: Optional[list[str]] = None,
    ) -> list[int]:
        """Union of all query results, newest first, capped at the limit."""
        uids: set[int] = set()
        for criterion in criteria:
            try:
                charset = None if _is_ascii(criterion) else "UTF-8"
                found = client.search(criterion, charset=charset)
            except Exception as e:
                message = f"Search failed for criterion {criterion}: {e}"
                logger.warning(message)
                if warnings is not None:
                    warnings.append(message)
                continue
            uids.update(found)

        ordered = sorted(uids, reverse=True)[: self.limit]
        logger.info(f"Search matched {len(uids)} message(s), keeping {len(ordered)}")
        return ordered

    def fetch(
        self,
        client: IMAPClient,
        uids: list[int],
        warnings: Optional[list[str]] = None,
    ) -> list[EmailRecord]:
        """FETCH RFC822 for the given UIDs, batch_size at a time, and parse each."""
        records: list[EmailRecord] = []
        for start in range(0, len(uids), self.batch_size):
            batch = uids[start:start + self.batch_size]
            try:
                response = client.fetch(batch, ["RFC822"])
            except Exception as e:
                message = f"Fetch failed for UIDs {batch[0]}..{batch[-1]}: {e}"
                logger.error(message)
                if warnings is not None:
                    warnings.append(message)
                continue

            for uid in batch:
                data = response.get(uid)
                raw = data.get(b"RFC822") if data else None
                if not raw:
                    message = f"No RFC822 data returned for UID {uid}"
                    logger.warning(message)
                    if warnings is not None:
                        warnings.append(message)
                    continue
                try:
                    records.append(parse_message(uid, raw))
                except Exception as e:
                    message = f"Failed to parse message UID {uid}: {e}"
                    logger.error(message)
                    if warnings is not None:
                        warnings.append(message)

        logger.info(f"Fetched and parsed {len(records)} of {len(uids)} message(s)")
        return records


def _is_ascii(criterion: list[str]) -> bool:
    return all(str(token).isascii() for token in criterion)
