"""
Excel export functionality for SplitKit
"""
from __future__ import annotations
import re
from datetime import date
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from computations import compute_summary, filter_expenses_by_date, suggest_settlements
from models import GroupData

MONEY = "0.00"


def _style_header(ws, row=1):
    """Apply header styling to worksheet row"""
    thin = Side(style="thin", color="A0A0A0")
    for cell in ws[row]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill("solid", fgColor="4F81BD")
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = Border(left=thin, right=thin, top=thin, bottom=thin)


def _autosize_columns(ws, min_width=10, max_width=45):
    """Fit column widths to the longest value"""
    for col in range(1, ws.max_column + 1):
        letter = get_column_letter(col)
        longest = max((len(str(c.value)) for c in ws[letter] if c.value is not None), default=0)
        ws.column_dimensions[letter].width = max(min_width, min(max_width, longest + 2))


def _money_columns(ws, first_col, last_col, first_row=2):
    for r in range(first_row, ws.max_row + 1):
        for c in range(first_col, last_col + 1):
            ws.cell(r, c).number_format = MONEY


def _new_sheet(wb, title, headers):
    # sheet titles: max 31 chars, no []:*?/ or backslash
    ws = wb.create_sheet(re.sub(r"[\[\]:*?/\\]", "_", title)[:31])
    ws.append(headers)
    _style_header(ws, 1)
    ws.freeze_panes = "A2"
    return ws


def export_excel(
    data: GroupData,
    filepath: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> None:
    """
    Export a group to an Excel file with sheets:
    - One sheet per payer listing what they paid and each member's share
    - Summary sheet
    - Transfers sheet (suggested settlements)
    - Settlements sheet (payments already recorded)
    """
    wb = Workbook()
    wb.remove(wb.active)

    group = data.group
    members = group.members
    names = {m.id: m.name for m in members}
    exps = filter_expenses_by_date(data.expenses, start, end)

    payers = [m for m in members if any(e.payer_id == m.id for e in exps)]
    for payer in payers:
        headers = ["date", "title", "amount"] + [m.name for m in members] + ["note"]
        ws = _new_sheet(wb, f"{payer.name}_paid", headers)
        paid = sorted((e for e in exps if e.payer_id == payer.id), key=lambda e: e.date)
        for e in paid:
            by_member = {s.member_id: s.amount for s in e.shares}
            ws.append([e.date[:10], e.title, e.amount] + [by_member.get(m.id, 0.0) for m in members] + [e.note or ""])

        last = ws.max_row
        if last >= 2:
            ws.append(["TOTALS", ""] + [""] * (len(members) + 1))
            trow = ws.max_row
            ws.cell(trow, 1).font = Font(bold=True)
            for col in range(3, 4 + len(members)):
                letter = get_column_letter(col)
                ws.cell(trow, col).value = f"=SUM({letter}2:{letter}{last})"
        _money_columns(ws, 3, 3 + len(members))
        _autosize_columns(ws)

    ws = _new_sheet(wb, "Summary", ["Member", "Paid", "Consumed", "Sent", "Received", "Net"])
    summary = compute_summary(group, data.expenses, data.settlements, start, end)
    for m in members:
        s = summary[m.id]
        ws.append([m.name, s["paid"], s["consumed"], s["sent"], s["received"], s["net"]])
    _money_columns(ws, 2, 6)
    _autosize_columns(ws)

    # Suggestions always cover the whole history, not the date filter
    ws = _new_sheet(wb, "Transfers", ["From (Debtor)", "To (Creditor)", f"Amount ({group.currency})"])
    for t in suggest_settlements(group, data.expenses, data.settlements):
        ws.append([names.get(t.from_member, t.from_member), names.get(t.to_member, t.to_member), t.amount])
    _money_columns(ws, 3, 3)
    _autosize_columns(ws)

    ws = _new_sheet(wb, "Settlements", ["Date", "From", "To", f"Amount ({group.currency})"])
    for s in sorted(data.settlements, key=lambda s: s.date):
        ws.append([s.date[:10], names.get(s.from_member, s.from_member), names.get(s.to_member, s.to_member), s.amount])
    _money_columns(ws, 4, 4)
    _autosize_columns(ws)

    wb.save(filepath)
