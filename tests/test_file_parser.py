"""
Tests for CSV / XLSX upload parsing.

Covers:
  - UTF-8 BOM, trimmed headers and cells, blank rows dropped
  - XLSX first sheet via openpyxl, numeric cells kept as numbers
  - empty files and unsupported extensions
  - source row numbers kept for rows after dropped blank rows
"""

import io

import pytest
from openpyxl import Workbook

from testhub.core.exceptions import ValidationError
from testhub.services.file_parser import parse_csv, parse_excel, parse_file


def _xlsx(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_csv_with_bom_and_blank_rows():
    data = "\ufeffTitle , Priority,期待結果\nLogin , HIGH,OK\n,,\n  , ,\nLogout,,\n".encode("utf-8")
    rows = parse_csv(data)
    assert rows == [
        {"Title": "Login", "Priority": "HIGH", "期待結果": "OK"},
        {"Title": "Logout", "Priority": None, "期待結果": None},
    ]


def test_csv_multiline_cell():
    rows = parse_csv('Title,Test Steps\nLogin,"1. Open app\n2. Tap login"\n')
    assert rows[0]["Test Steps"] == "1. Open app\n2. Tap login"


def test_csv_short_row_padded_with_none():
    rows = parse_csv("Title,Module,Suite\nOnly title\n")
    assert rows == [{"Title": "Only title", "Module": None, "Suite": None}]


def test_empty_csv():
    with pytest.raises(ValidationError, match="File is empty"):
        parse_csv(b"")


def test_xlsx_first_sheet():
    data = _xlsx([
        ["Title", "Estimated Time", None],
        ["Login", 30, "ignored: no header"],
        [None, None, None],
        ["Logout", None, None],
    ])
    rows = parse_excel(data)
    assert rows == [
        {"Title": "Login", "Estimated Time": 30},
        {"Title": "Logout", "Estimated Time": None},
    ]


def test_unreadable_workbook():
    with pytest.raises(ValidationError, match="Could not read workbook"):
        parse_excel(b"definitely not a zip file")


@pytest.mark.parametrize("filename", ["cases.csv", "CASES.CSV"])
def test_parse_file_dispatches_csv(filename):
    assert parse_file(filename, b"Title\nA\n") == [{"Title": "A"}]


def test_parse_file_dispatches_xlsx():
    assert parse_file("cases.xlsx", _xlsx([["Title"], ["A"]])) == [{"Title": "A"}]


def test_unsupported_file_type():
    with pytest.raises(ValidationError, match="Unsupported file type: cases.pdf"):
        parse_file("cases.pdf", b"%PDF")


def test_csv_row_numbers_survive_blank_rows():
    rows = parse_csv("Title\nA\n\n,\nB\n")
    assert rows == [{"Title": "A"}, {"Title": "B"}]
    assert rows.row_numbers == [2, 5]


def test_csv_row_numbers_count_records_not_lines():
    rows = parse_csv('Title,Test Steps\nA,"1. Open\n2. Tap"\nB,\n')
    assert rows.row_numbers == [2, 3]


def test_xlsx_row_numbers_survive_blank_rows():
    rows = parse_excel(_xlsx([["Title"], ["A"], [None], [None], ["B"]]))
    assert rows == [{"Title": "A"}, {"Title": "B"}]
    assert rows.row_numbers == [2, 5]
