# fleet_settlement/tests/test_exports.py

import csv
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from fleet_settlement.core.config import settings
from fleet_settlement.core.db import get_db
from fleet_settlement.exports.builders.ledger_builder import (
    LEDGER_TRANSACTION_HEADERS,
    build_ledger_transactions_export_query,
    transform_ledger_transaction_row,
)
from fleet_settlement.exports.streaming_service import StreamingExportService
from fleet_settlement.ledger.models import TransactionType
from fleet_settlement.main import app


@pytest.fixture
def populated(ledger, db_session):
    ledger.append("VEH-1001", TransactionType.GST, Decimal("400"), "2025-03", batch_id="b-1")
    ledger.append("VEH-1001", TransactionType.EMI, Decimal("5000"), "EMI-000", penalty_amount=Decimal("150"))
    ledger.append("VEH-2002", TransactionType.RENT, Decimal("3000"), "RENT-000", batch_id="b-1")
    db_session.commit()
    return ledger


class TestStreamingExport:

    def test_csv_export(self, populated, db_session, tmp_path):
        query = build_ledger_transactions_export_query(db_session, {"entity_id": "VEH-1001"})
        path, count = StreamingExportService(str(tmp_path)).stream_query_to_file(
            query, "ledger", "csv", transform_ledger_transaction_row, LEDGER_TRANSACTION_HEADERS
        )

        assert count == 2
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [r["Period"] for r in rows] == ["2025-03", "EMI-000"]
        assert rows[1]["Amount"] == "5000.00"
        assert rows[1]["Penalty"] == "150.00"
        assert rows[0]["Batch ID"] == "b-1"

    def test_excel_export(self, populated, db_session, tmp_path):
        query = build_ledger_transactions_export_query(db_session, {"batch_id": "b-1"})
        path, count = StreamingExportService(str(tmp_path)).stream_query_to_file(
            query, "ledger", "excel", transform_ledger_transaction_row, LEDGER_TRANSACTION_HEADERS
        )

        assert count == 2
        assert path.endswith(".xlsx")
        sheet = load_workbook(path).active
        values = list(sheet.values)
        assert list(values[0]) == LEDGER_TRANSACTION_HEADERS
        assert values[1][1] == "VEH-1001"
        assert values[2][2] == "rent"
        assert values[2][4] == 3000

    def test_type_filter(self, populated, db_session):
        query = build_ledger_transactions_export_query(db_session, {"transaction_type": "emi"})
        assert [t.period_key for t in query] == ["EMI-000"]

    def test_unsupported_format(self, db_session, tmp_path):
        query = build_ledger_transactions_export_query(db_session, {})
        with pytest.raises(ValueError):
            StreamingExportService(str(tmp_path)).stream_query_to_file(
                query, "ledger", "pdf", transform_ledger_transaction_row, LEDGER_TRANSACTION_HEADERS
            )


class TestExportRoute:

    @pytest.fixture
    def client(self, db_session, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "export_dir", str(tmp_path))
        app.dependency_overrides[get_db] = lambda: db_session
        try:
            yield TestClient(app)
        finally:
            app.dependency_overrides.clear()

    def test_csv_download(self, client, populated):
        response = client.get("/ledger/export", params={"format": "csv", "entity_id": "VEH-2002"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert len(lines) == 2
        assert "RENT-000" in lines[1]

    def test_excel_download(self, client, populated):
        response = client.get("/ledger/export", params={"format": "excel"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )

    def test_nothing_to_export(self, client):
        response = client.get("/ledger/export", params={"format": "csv"})
        assert response.status_code == 404
