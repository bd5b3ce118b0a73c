"""
Unit Tests - Statement Splitter
"""
from src.migrations.splitter import split_statements, strip_terminator
from src.migrations.versions import m002_trip_facts_system, m005_travel_services_triggers


class TestSplitStatements:
    """Tests for split_statements"""

    def test_splits_on_terminators(self):
        sql = """
CREATE TABLE a (id INTEGER);
CREATE TABLE b (
  id INTEGER
);
"""
        assert split_statements(sql) == [
            "CREATE TABLE a (id INTEGER)",
            "CREATE TABLE b (\n  id INTEGER\n)",
        ]

    def test_skips_comment_and_blank_lines(self):
        sql = """
-- header comment

-- another
CREATE TABLE a (id INTEGER);
"""
        assert split_statements(sql) == ["CREATE TABLE a (id INTEGER)"]

    def test_empty_input(self):
        assert split_statements("") == []
        assert split_statements("-- only a comment\n\n") == []

    def test_trigger_body_stays_whole(self):
        sql = """
CREATE TRIGGER IF NOT EXISTS trg_cleanup
AFTER INSERT ON cache
BEGIN
  DELETE FROM cache WHERE expires_at < datetime('now');
  DELETE FROM items WHERE owner IS NULL;
END;
CREATE TABLE after_trigger (id INTEGER);
"""
        statements = split_statements(sql)

        assert len(statements) == 2
        assert statements[0].startswith("CREATE TRIGGER IF NOT EXISTS trg_cleanup")
        assert "DELETE FROM items WHERE owner IS NULL;" in statements[0]
        assert statements[0].endswith("END")
        assert statements[1] == "CREATE TABLE after_trigger (id INTEGER)"

    def test_case_expression_inside_trigger(self):
        sql = """
CREATE TRIGGER t AFTER INSERT ON x
BEGIN
  UPDATE y SET flag = CASE WHEN NEW.v > 0 THEN 1 ELSE 0 END;
  INSERT INTO z VALUES (1);
END;
SELECT 1;
"""
        statements = split_statements(sql)

        assert len(statements) == 2
        assert "INSERT INTO z VALUES (1);" in statements[0]
        assert statements[1] == "SELECT 1"

    def test_trailing_comment_end_is_ignored(self):
        sql = """
CREATE TRIGGER t AFTER DELETE ON x
BEGIN
  INSERT INTO log VALUES (OLD.id); -- END of the line
END;
"""
        statements = split_statements(sql)

        assert len(statements) == 1
        assert statements[0].endswith("END")

    def test_terminator_before_trailing_comment(self):
        sql = """
CREATE INDEX idx_a ON a(id); -- lookup by id
CREATE TABLE b (id INTEGER); -- note; with a semicolon
CREATE TABLE c (name TEXT DEFAULT '--');
"""
        assert split_statements(sql) == [
            "CREATE INDEX idx_a ON a(id)",
            "CREATE TABLE b (id INTEGER)",
            "CREATE TABLE c (name TEXT DEFAULT '--')",
        ]

    def test_transaction_control_is_dropped(self):
        sql = """
BEGIN TRANSACTION;
CREATE TABLE a (id INTEGER);
COMMIT;
BEGIN;
CREATE TABLE b (id INTEGER);
END TRANSACTION;
"""
        assert split_statements(sql) == [
            "CREATE TABLE a (id INTEGER)",
            "CREATE TABLE b (id INTEGER)",
        ]

    def test_missing_final_terminator(self):
        sql = "CREATE TABLE a (id INTEGER);\nCREATE TABLE b (id INTEGER)"

        assert split_statements(sql) == [
            "CREATE TABLE a (id INTEGER)",
            "CREATE TABLE b (id INTEGER)",
        ]

    def test_packaged_facts_migration(self):
        statements = split_statements(m002_trip_facts_system.MIGRATION.sql)

        triggers = [s for s in statements if s.startswith("CREATE TRIGGER")]
        assert len(statements) == 10
        assert len(triggers) == 6
        assert not any(s.upper().startswith(("BEGIN", "COMMIT")) for s in statements)

    def test_packaged_cleanup_trigger_is_one_statement(self):
        statements = split_statements(m005_travel_services_triggers.MIGRATION.sql)

        cleanup = [s for s in statements if "trg_travel_search_cache_cleanup" in s]
        assert len(statements) == 4
        assert len(cleanup) == 1
        assert cleanup[0].count("DELETE FROM") == 3


class TestStripTerminator:
    def test_strips_repeated_terminators(self):
        assert strip_terminator("SELECT 1 ;; \n") == "SELECT 1"

    def test_keeps_inner_semicolons(self):
        assert strip_terminator("BEGIN\n  SELECT 1;\nEND;") == "BEGIN\n  SELECT 1;\nEND"
