from typing import Optional

from models.data_models import ParsingRule
from storage.database import Database


class ParsingRuleStore:
    """Read-only view of the parsing_rules table.

    Rules are written by whoever administers the banks; this project only
    looks them up.
    """

    def __init__(self, db: Database):
        self.db = db

    def active_rule_for(self, bank_name: str) -> Optional[ParsingRule]:
        """The active rule for a bank, or None. Lowest id wins if there are several."""
        if not bank_name:
            return None
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM parsing_rules
                WHERE bank_name = ? AND active = 1
                ORDER BY id
                LIMIT 1
                """,
                (bank_name,),
            ).fetchone()
        if row is None:
            return None
        return ParsingRule(
            id=row["id"],
            bank_name=row["bank_name"],
            amount_pattern=row["amount_pattern"],
            date_pattern=row["date_pattern"],
            merchant_pattern=row["merchant_pattern"],
            description_pattern=row["description_pattern"],
            active=bool(row["active"]),
        )
