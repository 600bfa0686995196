# tightbudget/outputs/excel_output.py

"""Excel output module backed by XlsxWriter.

Writes generated transactions to a workbook with an ``AllData`` sheet and a
``Summary`` sheet that totals expenses, income and net cash flow per
category, plus a pie chart of expenses by category.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal

import xlsxwriter

from tightbudget.outputs.base import BaseOutput

logger = logging.getLogger(__name__)


class ExcelOutput(BaseOutput):
    ALL_DATA = "AllData"
    SUMMARY = "Summary"

    def __init__(self, config: dict):
        self.config = config
        self.output_dir = config.get("output_dir", "data")
        os.makedirs(self.output_dir, exist_ok=True)

    def append(self, transactions):
        if not transactions:
            logger.info("No transactions to write.")
            return None

        year = min(tx.date for tx in transactions).year
        out_path = os.path.join(self.output_dir, f"Recurring{year}.xlsx")

        workbook = xlsxwriter.Workbook(out_path)
        amount_fmt = workbook.add_format({"num_format": "$#,##0.00"})

        headers = ["date", "user_id", "merchant", "category", "description", "type", "amount"]
        all_ws = workbook.add_worksheet(self.ALL_DATA)
        all_ws.freeze_panes(1, 0)
        all_ws.write_row(0, 0, headers)
        ordered = sorted(transactions, key=lambda t: t.date)
        for idx, tx in enumerate(ordered, start=1):
            all_ws.write_row(idx, 0, [
                tx.date.strftime("%Y-%m-%d %H:%M"),
                tx.user_id,
                tx.merchant,
                tx.category,
                tx.description or "",
                "expense" if tx.is_expense else "income",
            ])
            all_ws.write_number(idx, 6, float(tx.amount), amount_fmt)
        all_ws.set_column(6, 6, None, amount_fmt)
        all_ws.add_table(0, 0, len(ordered), len(headers) - 1, {
            "columns": [{"header": h} for h in headers]
        })

        summary_rows = self._build_summary_rows(transactions)
        summary_ws = workbook.add_worksheet(self.SUMMARY)
        summary_ws.freeze_panes(1, 0)
        summary_ws.set_column(1, 3, None, amount_fmt)
        for offset, row in enumerate(summary_rows):
            summary_ws.write_row(offset, 0, row)

        expense_rows = [r for r in summary_rows[1:-1] if r[1] > 0]
        if expense_rows:
            chart = workbook.add_chart({"type": "pie"})
            chart.add_series({
                "categories": [summary_ws.name, 1, 0, len(summary_rows) - 2, 0],
                "values": [summary_ws.name, 1, 1, len(summary_rows) - 2, 1],
                "name": "Recurring expenses by category",
            })
            chart.set_title({"name": "Recurring expenses by category"})
            summary_ws.insert_chart(0, 5, chart)

        workbook.close()
        logger.info("Written Excel workbook %s", out_path)
        return out_path

    def _build_summary_rows(self, transactions):
        expenses = {}
        income = {}
        net = {}
        for tx in transactions:
            category = (tx.category or "").strip() or "uncategorized"
            bucket = expenses if tx.is_expense else income
            bucket[category] = bucket.get(category, Decimal("0")) + tx.amount
            net[category] = net.get(category, Decimal("0")) + tx.signed_amount

        categories = sorted(
            set(expenses) | set(income),
            key=lambda c: (-expenses.get(c, Decimal("0")), c),
        )
        rows = [["Category", "Expenses", "Income", "Net"]]
        for category in categories:
            rows.append([
                category,
                float(expenses.get(category, 0)),
                float(income.get(category, 0)),
                float(net[category]),
            ])
        rows.append([
            "Total",
            float(sum(expenses.values(), Decimal("0"))),
            float(sum(income.values(), Decimal("0"))),
            float(sum(net.values(), Decimal("0"))),
        ])
        return rows
