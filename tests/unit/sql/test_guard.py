"""
Unit tests for the read-only guard.
"""

import pytest

from querypilot.sql.guard import check_read_only


class TestAllowed:
    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM dbo.orders",
            "SELECT TOP 10 name, total FROM dbo.customers ORDER BY total DESC;",
            "WITH recent AS (SELECT id FROM orders) SELECT COUNT(*) FROM recent",
            "SELECT updated_at, deleted_flag FROM dbo.audit WHERE action = 'DELETE'",
            "SELECT TOP 10 id FROM dbo.tickets WHERE note LIKE '%went into production%'",
            "SELECT id FROM dbo.logs WHERE message = 'ran xp_cmdshell into temp'",
            "SELECT id FROM dbo.orders -- copied into the archive nightly",
        ],
    )
    def test_single_select(self, sql):
        assert check_read_only(sql) is None


class TestRejected:
    def test_empty(self):
        assert check_read_only("   ") == "Empty SQL statement"

    def test_multiple_statements(self):
        reason = check_read_only("SELECT 1; DROP TABLE dbo.orders")
        assert "Multiple SQL statements" in reason

    @pytest.mark.parametrize(
        "sql,keyword",
        [
            ("DELETE FROM dbo.orders", "DELETE"),
            ("UPDATE dbo.orders SET total = 0", "UPDATE"),
            ("DROP TABLE dbo.orders", "DROP"),
            ("INSERT INTO dbo.orders (id) VALUES (1)", "INSERT"),
        ],
    )
    def test_write_statements(self, sql, keyword):
        reason = check_read_only(sql)
        assert reason.startswith("Only SELECT queries are allowed")
        assert keyword in reason

    def test_cte_wrapping_delete(self):
        reason = check_read_only("WITH old AS (SELECT id FROM orders) DELETE FROM orders")
        assert reason is not None
        assert "Only SELECT queries are allowed" in reason

    def test_select_into(self):
        reason = check_read_only("SELECT * INTO dbo.orders_backup FROM dbo.orders")
        assert "SELECT ... INTO" in reason

    def test_select_into_after_literal(self):
        reason = check_read_only("SELECT 'into' AS label INTO dbo.labels FROM dbo.orders")
        assert "SELECT ... INTO" in reason

    def test_into_outfile(self):
        reason = check_read_only("SELECT * INTO OUTFILE '/tmp/orders.csv' FROM orders")
        assert "Dangerous construct" in reason
        assert "OUTFILE" in reason

    def test_file_side_channel(self):
        reason = check_read_only("SELECT LOAD_FILE('/etc/passwd')")
        assert "Dangerous construct" in reason

    def test_shell_side_channel(self):
        reason = check_read_only("SELECT * FROM OPENROWSET('SQLNCLI', 'x', 'y')")
        assert "Dangerous construct" in reason
