# tightbudget/outputs/csv_output.py

import csv
import logging
import os

from tightbudget.outputs.base import BaseOutput

logger = logging.getLogger(__name__)

HEADERS = ['date', 'user_id', 'merchant', 'category', 'description', 'type', 'amount']


class CSVOutput(BaseOutput):
    """
    Appends generated transactions to Recurring<Year>.csv, one file per year
    of the earliest transaction, keeping rows already on disk and sorting the
    result by date (oldest to latest).
    """
    def __init__(self, config):
        self.config     = config
        self.output_dir = config.get('output_dir', 'data')
        os.makedirs(self.output_dir, exist_ok=True)

    def append(self, transactions):
        if not transactions:
            logger.info("No transactions to write.")
            return None

        rows = [
            [
                tx.date.isoformat(),
                str(tx.user_id),
                tx.merchant.strip(),
                tx.category.strip(),
                (tx.description or '').strip(),
                'expense' if tx.is_expense else 'income',
                f"{tx.amount:.2f}",
            ]
            for tx in transactions
        ]
        year = min(tx.date for tx in transactions).year
        out_path = os.path.join(self.output_dir, f"Recurring{year}.csv")

        existing = []
        if os.path.exists(out_path):
            with open(out_path, newline='') as f:
                reader = csv.reader(f)
                next(reader, None)
                existing = [row for row in reader if row]

        # Dedupe on the full row so re-running an export is idempotent
        merged = {tuple(row): row for row in existing + rows}
        sorted_rows = sorted(merged.values(), key=lambda r: r[0])

        with open(out_path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(HEADERS)
            writer.writerows(sorted_rows)

        logger.info("Written %d transactions to %s", len(sorted_rows), out_path)
        return out_path
