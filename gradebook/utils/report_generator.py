"""
Excel report builder.

Generates multi-sheet XLSX files:
  Sheet 1 - Summary (Student, Earned, Possible, %, Letter)
  Sheet 2 - Item scores (student × assignment/quiz matrix)
  Sheet 3 - Statistics with grade distribution chart
"""

import io
from typing import Any, Dict

from openpyxl import Workbook
from openpyxl.chart import BarChart, Reference
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from gradebook.utils.logger import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Style constants
# ---------------------------------------------------------------------------
_HEADER_FONT = Font(bold=True, color="FFFFFF", size=12)
_HEADER_FILL = PatternFill("solid", fgColor="2F5496")
_STATUS_FILLS = {
    "submitted": PatternFill("solid", fgColor="FFF2CC"),
    "excluded": PatternFill("solid", fgColor="D9D9D9"),
}
_CENTER = Alignment(horizontal="center", vertical="center")

_GRADE_COLOURS = {
    "A": "27AE60",
    "B": "2ECC71",
    "C": "F39C12",
    "D": "E67E22",
    "F": "C0392B",
}


def _style_header_row(ws, col_count: int) -> None:
    """Apply header styling to the first row of *ws*."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _CENTER


def _auto_width(ws) -> None:
    """Set each column width to fit the widest cell (max 50 chars)."""
    for col_cells in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col_cells)
        col_letter = get_column_letter(col_cells[0].column)
        ws.column_dimensions[col_letter].width = min(max_len + 4, 50)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_gradebook_report(gradebook, stats: Dict[str, Any]) -> io.BytesIO:
    """
    Build a complete Excel report for a course gradebook.

    Args:
        gradebook: :class:`~gradebook.evaluation.gradebook.Gradebook`.
        stats: Output of ``calculate_course_statistics``.

    Returns:
        :class:`io.BytesIO` containing the XLSX data.
    """
    wb = Workbook()
    course_code = gradebook.course_code or "Course"

    # ------ Sheet 1: Summary -------------------------------------------------
    ws_summary = wb.active
    ws_summary.title = "Summary"
    headers = ["Student", "Earned Points", "Possible Points", "Percentage", "Letter Grade", "Weighted"]
    ws_summary.append(headers)
    _style_header_row(ws_summary, len(headers))

    for row in gradebook.rows:
        result = row.result
        if result is None:
            ws_summary.append([row.name, None, None, None, "ERROR", None])
            continue
        ws_summary.append([
            row.name,
            result.earned_points,
            result.total_points,
            result.percentage,
            result.letter_grade,
            "Yes" if result.is_weighted else "No",
        ])
        # Colour-code letter cell
        grade_cell = ws_summary.cell(row=ws_summary.max_row, column=5)
        colour = _GRADE_COLOURS.get(result.letter_grade, "7F8C8D")
        grade_cell.fill = PatternFill("solid", fgColor=colour)
        grade_cell.font = Font(bold=True, color="FFFFFF")
        grade_cell.alignment = _CENTER

    _auto_width(ws_summary)

    # ------ Sheet 2: Item scores ---------------------------------------------
    ws_items = wb.create_sheet("Item Scores")
    item_headers = ["Student"] + [
        f"{col.title or col.item_id} ({col.max_points:g} pts)" for col in gradebook.columns
    ] + ["Total %"]
    ws_items.append(item_headers)
    _style_header_row(ws_items, len(item_headers))

    for row in gradebook.rows:
        values = [row.name]
        values += [cell.score if cell.score is not None else "-" for cell in row.cells]
        values.append(row.result.percentage if row.result else None)
        ws_items.append(values)
        # Highlight pending and excluded scores
        for col_idx, cell in enumerate(row.cells, start=2):
            fill = _STATUS_FILLS.get(cell.status)
            if fill is not None:
                ws_items.cell(row=ws_items.max_row, column=col_idx).fill = fill

    _auto_width(ws_items)

    # ------ Sheet 3: Statistics + Chart --------------------------------------
    ws_stats = wb.create_sheet("Statistics")
    stat_rows = [
        ("Course Code", course_code),
        ("Total Students", stats.get("total_students", len(gradebook.rows))),
        ("Mean %", stats.get("mean_percentage", 0)),
        ("Median %", stats.get("median_percentage", 0)),
        ("Highest %", stats.get("highest", 0)),
        ("Lowest %", stats.get("lowest", 0)),
        ("Pass Rate (%)", stats.get("pass_rate", 0)),
        ("Standard Deviation", stats.get("std_deviation", 0)),
    ]
    for label, value in stat_rows:
        ws_stats.append([label, value])

    # Grade distribution sub-table
    ws_stats.append([])
    ws_stats.append(["Grade", "Count"])
    grade_dist: Dict[str, int] = stats.get("grade_distribution", {})
    chart_start_row = ws_stats.max_row + 1
    for grade, count in sorted(grade_dist.items()):
        ws_stats.append([grade, count])

    # Bar chart
    if grade_dist:
        chart_end_row = ws_stats.max_row
        chart = BarChart()
        chart.type = "col"
        chart.title = f"{course_code} - Grade Distribution"
        chart.y_axis.title = "Students"
        chart.x_axis.title = "Grade"
        cats = Reference(ws_stats, min_col=1, min_row=chart_start_row, max_row=chart_end_row)
        data = Reference(ws_stats, min_col=2, min_row=chart_start_row - 1, max_row=chart_end_row)
        chart.add_data(data, titles_from_data=True)
        chart.set_categories(cats)
        chart.shape = 4
        ws_stats.add_chart(chart, "D2")

    _auto_width(ws_stats)

    # ------ Write to BytesIO -------------------------------------------------
    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    log.info("Generated Excel report for course %s (%d students)", course_code, len(gradebook.rows))
    return output
