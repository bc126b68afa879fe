import io
from datetime import date, timedelta

import pytest
from openpyxl import load_workbook
from reportlab.pdfbase import pdfmetrics

import main
from conftest import tx
from models.transaction import TransactionFilters
from services import export_service as export_module
from services.export_service import ExportService, format_money, truncate
from services.stats_service import StatsService

exporter = ExportService()
stats = StatsService()


@pytest.fixture
def sixty(db, store, user):
    start = date(2024, 1, 1)
    for i in range(60):
        store.create(db, user, tx(
            type="income" if i % 3 == 0 else "expense",
            category="Lương" if i % 3 == 0 else "Ăn uống",
            amount=1000 * (i + 1),
            description=f"Giao dịch số {i} với một mô tả khá dài để bị cắt bớt",
            on=start + timedelta(days=i),
        ))


def test_format_money():
    assert format_money(1950000) == "1.950.000 đ"
    assert format_money(12.5) == "12,50 đ"


def test_truncate():
    assert truncate("x" * 40) == "x" * 30
    assert truncate("court") == "court"


def test_pdf_caps_rows_and_truncates(db, store, user, sixty, monkeypatch):
    tables = []
    real_table = export_module.Table

    def spy(data, *args, **kwargs):
        tables.append(data)
        return real_table(data, *args, **kwargs)

    monkeypatch.setattr(export_module, "Table", spy)
    rows = store.all(db, user, sort="-date")
    content = exporter.export_pdf(user, TransactionFilters(), rows, stats.summary(db, user.id))

    assert content.startswith(b"%PDF")
    detail = tables[-1]
    assert detail[0] == ["Date", "Type", "Catégorie", "Description", "Montant"]
    assert len(detail) == 1 + 50
    assert detail[1][0] == "29/02/2024"
    assert all(len(row[3]) <= 30 for row in detail[1:])


def test_report_font_covers_vietnamese():
    text = "Ăn uống Lương Giao dịch số một mô tả khá dài để bị cắt bớt Phở Dépense Catégorie đ"
    for name in export_module.register_fonts():
        glyphs = pdfmetrics.getFont(name).face.charToGlyph
        assert [c for c in set(text) if not c.isspace() and ord(c) not in glyphs] == []


def test_pdf_with_no_transactions(user):
    summary = {"income": 0, "expense": 0, "balance": 0, "totalTransactions": 0}
    content = exporter.export_pdf(user, TransactionFilters(start_date=date(2024, 1, 1)), [], summary)
    assert content.startswith(b"%PDF")
    assert content.rstrip().endswith(b"%%EOF")


def test_excel_workbook_layout(db, store, user, sixty):
    rows = store.all(db, user, sort="-date")
    content = exporter.export_excel(user, TransactionFilters(), rows, stats.summary(db, user.id),
                                    stats.by_category(db, user.id))
    workbook = load_workbook(io.BytesIO(content))

    assert workbook.sheetnames == ["Résumé", "Transactions", "Par catégorie"]

    summary = workbook["Résumé"]
    assert summary["A2"].value == "Total des revenus"
    assert isinstance(summary["B2"].value, (int, float))
    assert summary["B2"].number_format == '#,##0 "đ"'
    assert summary["B5"].value == 60

    detail = workbook["Transactions"]
    assert detail.max_row == 61
    assert [detail.cell(row=r, column=1).value for r in (2, 3, 61)] == [1, 2, 60]
    assert detail["F2"].value == 60000
    assert detail["F2"].number_format == '#,##0 "đ"'
    assert detail["E2"].value.startswith("Giao dịch số 59")

    categories = workbook["Par catégorie"]
    assert categories["A1"].value == "Catégorie"
    assert sum(categories.cell(row=r, column=3).value for r in range(2, categories.max_row + 1)) == \
        sum(1000 * (i + 1) for i in range(60))


def test_excel_with_no_transactions(user):
    summary = {"income": 0, "expense": 0, "balance": 0, "totalTransactions": 0}
    workbook = load_workbook(io.BytesIO(exporter.export_excel(user, None, [], summary, [])))
    assert workbook["Transactions"].max_row == 1
    assert workbook["Par catégorie"].max_row == 1


class TestExportEndpoints:
    def test_pdf_download(self, client, auth_headers, sixty):
        response = client.get("/api/export/pdf", headers=auth_headers,
                              params={"type": "expense", "startDate": "2024-01-10"})
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"].startswith("attachment; filename=")
        assert response.content.startswith(b"%PDF")

    def test_excel_download_empty(self, client, auth_headers):
        response = client.get("/api/export/excel", headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == export_module.EXCEL_MIME
        assert response.headers["content-disposition"].endswith(".xlsx")
        assert load_workbook(io.BytesIO(response.content))["Résumé"]["B5"].value == 0

    def test_excel_download_filters_rows(self, client, auth_headers, sixty):
        response = client.get("/api/export/excel", headers=auth_headers, params={"type": "income"})
        detail = load_workbook(io.BytesIO(response.content))["Transactions"]
        assert detail.max_row == 1 + 20

    def test_rendering_failure_is_a_server_error(self, client, auth_headers, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(main.export_service, "export_pdf", broken)
        response = client.get("/api/export/pdf", headers=auth_headers)
        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Erreur lors de l'export PDF"}

    def test_export_requires_authentication(self, client):
        assert client.get("/api/export/excel").status_code == 401
