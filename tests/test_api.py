import unittest
import shutil
import sqlite3
import tempfile
from pathlib import Path

from query_exporter.api.coordinator import ExportCoordinator
from query_exporter.api.server import app
from query_exporter.config.env import ExportSettings


def _drop_row_500(cursor, row):
    # Simulates a row the driver cannot scan into the result's width.
    return row[:1] if row[0] == 500 else row


class TestExportAPI(unittest.TestCase):
    def setUp(self):
        app.testing = True
        self.client = app.test_client()
        self.tmp = Path(tempfile.mkdtemp())
        self.db_path = self.tmp / "app.db"
        conn = sqlite3.connect(self.db_path)
        conn.execute("CREATE TABLE events (id INTEGER, kind TEXT, amount REAL)")
        conn.executemany(
            "INSERT INTO events VALUES (?, ?, ?)",
            [(i, "click" if i % 2 else None, i * 1.5) for i in range(1000)],
        )
        conn.commit()
        conn.close()
        self.export_dir = self.tmp / "exports"
        self.row_factory = None
        self._saved = app.config['EXPORT_COORDINATOR']
        app.config['EXPORT_COORDINATOR'] = ExportCoordinator(
            ExportSettings(export_dir=self.export_dir, fetch_size=100),
            connect=self._connect,
            clock=lambda: 1700000000,
        )

    def tearDown(self):
        app.config['EXPORT_COORDINATOR'] = self._saved
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = self.row_factory
        return conn

    def test_select_one_default_name(self):
        rv = self.client.post("/export", json={"query": "SELECT 1"})
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        self.assertEqual(body["message"], "Export successful")
        self.assertTrue(body["file"].endswith("export_1700000000.csv"))
        self.assertTrue(Path(body["file"]).is_absolute())
        self.assertEqual(body["url"], "/storage/exports/export_1700000000.csv")
        self.assertEqual(Path(body["file"]).read_text().splitlines(), ["1", "1"])

    def test_full_table_export(self):
        rv = self.client.post("/export", json={"query": "SELECT id, kind, amount FROM events ORDER BY id", "output_file": "events.csv"})
        self.assertEqual(rv.status_code, 200)
        lines = (self.export_dir / "events.csv").read_text().splitlines()
        self.assertEqual(len(lines), 1001)
        self.assertEqual(lines[0], "id,kind,amount")
        self.assertEqual(lines[1], "0,NULL,0.0")
        self.assertEqual(lines[2], "1,click,1.5")

    def test_scan_failure_is_partial_success(self):
        self.row_factory = _drop_row_500
        rv = self.client.post("/export", json={"query": "SELECT id, kind FROM events ORDER BY id", "output_file": "p.csv"})
        self.assertEqual(rv.status_code, 200)
        lines = (self.export_dir / "p.csv").read_text().splitlines()
        self.assertEqual(len(lines), 1000)
        self.assertNotIn("500,NULL", lines)

    def test_get_is_method_not_allowed(self):
        rv = self.client.get("/export")
        self.assertEqual(rv.status_code, 405)
        self.assertEqual(rv.mimetype, "text/plain")
        self.assertEqual(rv.get_data(as_text=True).strip(), "Invalid request method")
        self.assertEqual(rv.headers["X-Export-Error"], "BadMethod")

    def test_options_is_method_not_allowed(self):
        rv = self.client.open("/export", method="OPTIONS")
        self.assertEqual(rv.status_code, 405)
        self.assertEqual(rv.mimetype, "text/plain")
        self.assertEqual(rv.headers["X-Export-Error"], "BadMethod")

    def test_unrouted_verb_gets_plain_text_405(self):
        rv = self.client.open("/export", method="PROPFIND")
        self.assertEqual(rv.status_code, 405)
        self.assertEqual(rv.mimetype, "text/plain")
        self.assertEqual(rv.get_data(as_text=True).strip(), "Invalid request method")
        self.assertEqual(rv.headers["X-Export-Error"], "BadMethod")

    def test_malformed_json(self):
        rv = self.client.post("/export", data="{oops", content_type="application/json")
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_data(as_text=True).strip(), "Invalid JSON request")

    def test_empty_query(self):
        rv = self.client.post("/export", json={"query": ""})
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.headers["X-Export-Error"], "MissingParameter")
        self.assertFalse(self.export_dir.exists())

    def test_unknown_table(self):
        rv = self.client.post("/export", json={"query": "SELECT * FROM nope", "output_file": "nope.csv"})
        self.assertEqual(rv.status_code, 500)
        self.assertEqual(rv.headers["X-Export-Error"], "QueryError")
        self.assertIn("Query execution failed", rv.get_data(as_text=True))
        self.assertTrue(self.export_dir.is_dir())

    def test_connection_error(self):
        def refuse():
            raise ConnectionRefusedError("refused")

        app.config['EXPORT_COORDINATOR'] = ExportCoordinator(ExportSettings(export_dir=self.export_dir), connect=refuse)
        rv = self.client.post("/export", json={"query": "SELECT 1"})
        self.assertEqual(rv.status_code, 500)
        self.assertEqual(rv.headers["X-Export-Error"], "ConnectionError")
        self.assertFalse(self.export_dir.exists())

    def test_health(self):
        rv = self.client.get("/health")
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
