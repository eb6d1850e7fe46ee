# cogs/utils/economy.py

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from cogs.ranks.constants import TRANSACTION_TYPE

from .coda_api import CodaAPIClient, CodaRequestError

logger = logging.getLogger('economy')

USER_ID_COLUMN = 'Discord User ID'
BALANCE_COLUMN = 'Balance'


class CodaBalanceStore:
    """Member balances kept in the Coda accounts table.

    Each account row holds ``Discord User ID`` and ``Balance``. Balances are
    read from the table on every call so purchases always see payments made
    elsewhere in the ledger. Debits write the new balance back to the row and,
    when a transactions table is configured, append a ledger entry.
    """

    def __init__(
        self,
        client: CodaAPIClient,
        doc_id: str,
        accounts_table_id: str,
        transactions_table_id: Optional[str] = None
    ):
        self.client = client
        self.doc_id = doc_id
        self.accounts_table_id = accounts_table_id
        self.transactions_table_id = transactions_table_id

    async def _find_account(self, user_id: int) -> Optional[Dict]:
        rows = await self.client.get_rows(
            self.doc_id,
            self.accounts_table_id,
            query=f'"{USER_ID_COLUMN}":"{user_id}"',
            limit=1
        )
        return rows[0] if rows else None

    @staticmethod
    def _parse_balance(row: Dict) -> Decimal:
        raw = row.get('values', {}).get(BALANCE_COLUMN, '0')
        if isinstance(raw, str):
            raw = raw.replace('$', '').replace(',', '').strip() or '0'
        try:
            return Decimal(str(raw))
        except InvalidOperation:
            logger.error(f"Unreadable balance {raw!r} in account row {row.get('id')}")
            return Decimal('0')

    async def get_balance(self, member_id: int) -> Decimal:
        """Current balance, 0 if the member has no account row.

        Raises:
            CodaRequestError: if the accounts table cannot be read.
        """
        row = await self._find_account(member_id)
        return self._parse_balance(row) if row else Decimal('0')

    async def debit(self, member_id: int, amount: Decimal, description: str = '') -> bool:
        """Withdraw ``amount`` from a member's account.

        Returns False without writing anything if the account is missing or
        would go negative, or if the ledger write fails.
        """
        try:
            row = await self._find_account(member_id)
            if not row:
                logger.warning(f"No account row for member {member_id}; cannot debit {amount}")
                return False

            current_balance = self._parse_balance(row)
            new_balance = current_balance - amount
            if new_balance < 0:
                logger.warning(
                    f"Refusing debit of {amount} for member {member_id}: balance {current_balance}"
                )
                return False

            await self.client.update_row(
                self.doc_id,
                self.accounts_table_id,
                row['id'],
                [{'column': BALANCE_COLUMN, 'value': str(new_balance)}]
            )
        except CodaRequestError as e:
            logger.error(f"Error debiting {amount} from member {member_id}: {e}")
            return False

        logger.info(f"Debited {amount} from member {member_id}; balance now {new_balance}")
        await self._record_transaction(member_id, amount, new_balance, description)
        return True

    async def _record_transaction(self, member_id: int, amount: Decimal, balance_after: Decimal, description: str):
        """Append a ledger row; failures are logged since the debit already happened."""
        if not self.transactions_table_id:
            return
        cells = [
            {'column': 'Transaction ID', 'value': str(uuid.uuid4())},
            {'column': USER_ID_COLUMN, 'value': str(member_id)},
            {'column': 'Type', 'value': TRANSACTION_TYPE},
            {'column': 'Amount', 'value': str(-amount)},
            {'column': 'Description', 'value': description},
            {'column': 'Account Balance After', 'value': str(balance_after)},
            {'column': 'Created At', 'value': datetime.now(timezone.utc).isoformat()},
        ]
        try:
            await self.client.insert_rows(self.doc_id, self.transactions_table_id, [cells])
        except CodaRequestError as e:
            logger.error(f"Failed to record transaction for member {member_id}: {e}")
