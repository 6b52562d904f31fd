import io
from typing import Any, Dict, List

import xlsxwriter
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from schemas import DashboardSummary

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ACTIVITY_HEADERS = ["date", "time", "division", "zone", "userName", "numOfActivities", "before", "after"]


def records_workbook(records: List[Dict[str, Any]]) -> io.BytesIO:
    """One row per before/after pair; records without images still get a row."""
    output = io.BytesIO()
    workbook = xlsxwriter.Workbook(output, {"in_memory": True})
    ws = workbook.add_worksheet("Activities")
    bold = workbook.add_format({"bold": True})
    for i, h in enumerate(ACTIVITY_HEADERS):
        ws.write(0, i, h, bold)
    row = 1
    for r in records:
        pairs = r.get("images") or [{}]
        for pair in pairs:
            ws.write(row, 0, str(r.get("date", "")))
            ws.write(row, 1, r.get("time", ""))
            ws.write(row, 2, r.get("division", ""))
            ws.write(row, 3, r.get("zone", ""))
            ws.write(row, 4, r.get("userName", ""))
            ws.write(row, 5, r.get("numOfActivities", 0))
            ws.write(row, 6, pair.get("before", ""))
            ws.write(row, 7, pair.get("after", ""))
            row += 1
    workbook.close()
    output.seek(0)
    return output


def summary_pdf(summary: DashboardSummary) -> io.BytesIO:
    buffer = io.BytesIO()
    # uncompressed so the figures stay searchable in the file
    c = canvas.Canvas(buffer, pagesize=A4, pageCompression=0)
    textobject = c.beginText(40, 800)
    textobject.textLines([
        "5S Dashboard Summary",
        "",
        f"Total activities: {summary.totalActivities}",
        f"Active users: {summary.totalUsers}",
        f"Announcements: {summary.totalAnnouncements}",
    ])
    c.drawText(textobject)
    c.showPage()
    c.save()
    buffer.seek(0)
    return buffer
