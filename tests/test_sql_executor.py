"""
Tests for bounded query execution against SQLite.
"""
import threading

import pytest

from sqlwarden.config import Profile, ProfileTable, install_profile_table
from sqlwarden.errors import (
    ConnectivityError,
    EngineError,
    ProfileNotFoundError,
    QueryCancelled,
    QueryTimeoutError,
    UnsupportedParameterError,
    ValidationError,
)
from sqlwarden.models import QueryResult
from sqlwarden.sql.executor import BoundedExecutor, execute_query, unique_columns

# Never finishes on its own; only the deadline or a cancel stops it.
ENDLESS_SQL = """
    WITH RECURSIVE counter(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM counter)
    SELECT count(*) FROM counter
"""


class TestExecute:
    """Test successful execution."""

    def test_select_value(self, executor):
        """Test the basic scenario: one column, one row, default row limit."""
        result = executor.execute("SELECT 1 AS Value")

        assert isinstance(result, QueryResult)
        assert result.columns == ["Value"]
        assert result.rows == [[1]]
        assert result.truncated is False
        assert result.row_limit == 100

    def test_column_order(self, executor):
        """Test columns follow the projection order."""
        result = executor.execute("SELECT email, id, name FROM users WHERE id = 1")
        assert result.columns == ["email", "id", "name"]
        assert result.rows == [["user1@example.com", 1, "user1"]]

    def test_duplicate_column_names(self, executor):
        """Test repeated column names are made unique."""
        result = executor.execute("SELECT id, id, name AS id FROM users WHERE id = 2")
        assert result.columns == ["id", "id_2", "id_3"]

    def test_null_column(self, executor):
        """Test a NULL column decodes to None."""
        result = executor.execute("SELECT email FROM users WHERE id = 3")
        assert result.rows == [[None]]

    def test_no_rows(self, executor):
        """Test an empty result keeps its columns."""
        result = executor.execute("SELECT id FROM users WHERE id < 0")
        assert result.columns == ["id"]
        assert result.rows == []
        assert result.truncated is False

    def test_profile_case_insensitive(self, executor):
        """Test profile names resolve case-insensitively."""
        result = executor.execute("SELECT 1 AS v", profile="Warehouse")
        assert result.row_limit == 5

    def test_connection_released(self, executor, engine_spy):
        """Test each call opens and closes exactly one connection."""
        executor.execute("SELECT 1")
        executor.execute("SELECT 2")
        assert engine_spy.engines_created == 2
        assert engine_spy.connections_opened == 2
        assert engine_spy.connections_closed == 2

    def test_to_dataframe(self, executor):
        """Test conversion to a pandas DataFrame."""
        df = executor.execute("SELECT id, name FROM users ORDER BY id").to_dataframe()
        assert list(df.columns) == ["id", "name"]
        assert len(df) == 10
        assert df.iloc[0]["name"] == "user1"

    def test_execute_query_uses_process_table(self, clean_env, profile_table):
        """Test the module-level helper reads the installed table."""
        install_profile_table(profile_table)
        result = execute_query("SELECT count(*) AS n FROM users")
        assert result.rows == [[10]]


class TestRowLimits:
    """Test row limits and truncation."""

    def test_default_limit(self, executor):
        """Test max_rows=None uses the profile default."""
        result = executor.execute("SELECT id FROM users", profile="warehouse")
        assert result.row_limit == 5
        assert result.row_count == 5
        assert result.truncated is True

    def test_request_clamped_to_profile_max(self, executor):
        """Test a request above the profile ceiling is clamped."""
        result = executor.execute("SELECT id FROM users", profile="warehouse", max_rows=10 + 1000)
        assert result.row_limit == 10

    def test_request_below_one(self, executor):
        """Test zero or negative requests clamp to one row."""
        assert executor.execute("SELECT id FROM users", max_rows=0).row_limit == 1
        assert executor.execute("SELECT id FROM users", max_rows=-5).row_limit == 1

    def test_exactly_row_limit_rows(self, executor):
        """Test exactly row_limit upstream rows is not truncation."""
        result = executor.execute("SELECT id FROM users ORDER BY id", max_rows=10)
        assert result.row_count == 10
        assert result.truncated is False

    def test_one_more_than_row_limit(self, executor):
        """Test row_limit + 1 upstream rows truncates to row_limit."""
        result = executor.execute("SELECT id FROM users ORDER BY id", max_rows=9)
        assert result.row_count == 9
        assert result.truncated is True
        assert result.rows[-1] == [9]

    def test_many_more_rows(self, executor):
        """Test a large upstream result only reads row_limit rows."""
        sql = """
            WITH RECURSIVE n(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM n WHERE x < 100000)
            SELECT x FROM n
        """
        result = executor.execute(sql, max_rows=3)
        assert result.rows == [[1], [2], [3]]
        assert result.truncated is True

    @pytest.mark.parametrize("max_rows", ["abc", "10", True, 2.5, [5]])
    def test_invalid_max_rows_opens_nothing(self, executor, engine_spy, max_rows):
        """Test a non-integer max_rows is rejected before any engine is created."""
        with pytest.raises(UnsupportedParameterError, match="max_rows"):
            executor.execute("SELECT id FROM users", max_rows=max_rows)
        assert engine_spy.engines_created == 0

    def test_whole_float_max_rows(self, executor):
        """Test a whole-number float, as decoded from JSON, is accepted."""
        assert executor.execute("SELECT id FROM users", max_rows=4.0).row_limit == 4


class TestParameters:
    """Test parameter binding."""

    def test_null_round_trip(self, executor):
        """Test a None parameter binds as NULL and decodes back to None."""
        result = executor.execute("SELECT :v AS v, :v IS NULL AS is_null", parameters={"v": None})
        assert result.rows == [[None, 1]]

    def test_scalar_kinds(self, executor):
        """Test ints, strings, booleans and decimals bind."""
        result = executor.execute(
            "SELECT :i AS i, :big AS big, :s AS s, :b AS b, :d AS d",
            parameters={"i": 7, "big": 2**40, "s": "O'Brien", "b": True, "d": 12.5},
        )
        i, big, s, b, d = result.rows[0]
        assert i == 7
        assert big == 2**40
        assert s == "O'Brien"
        assert b == 1
        assert d == pytest.approx(12.5)

    def test_filter_with_sigil(self, executor):
        """Test '@'-prefixed names bind to :name placeholders."""
        result = executor.execute(
            "SELECT name FROM users WHERE id = :id",
            parameters={"@id": 4},
        )
        assert result.rows == [["user4"]]

    def test_unreferenced_parameter_ignored(self, executor):
        """Test extra parameters are ignored."""
        result = executor.execute("SELECT 1 AS v", parameters={"unused": "x"})
        assert result.rows == [[1]]

    def test_missing_parameter_is_engine_error(self, executor):
        """Test a placeholder without a value fails after connecting."""
        with pytest.raises(EngineError, match="'v'"):
            executor.execute("SELECT :v AS v")

    def test_unsupported_parameter_opens_nothing(self, executor, engine_spy):
        """Test parameter errors are raised before any engine is created."""
        with pytest.raises(UnsupportedParameterError):
            executor.execute("SELECT :ids AS ids", parameters={"ids": [1, 2]})
        assert engine_spy.engines_created == 0
        assert engine_spy.connections_opened == 0


class TestRejections:
    """Test failures raised before any I/O."""

    def test_delete_opens_no_connection(self, executor, engine_spy):
        """Test a DELETE is rejected with zero connections opened."""
        with pytest.raises(ValidationError):
            executor.execute("DELETE FROM Users")
        assert engine_spy.engines_created == 0
        assert engine_spy.connections_opened == 0

    def test_empty_sql(self, executor, engine_spy):
        """Test empty SQL is a validation error."""
        with pytest.raises(ValidationError, match="cannot be empty"):
            executor.execute("   ")
        assert engine_spy.connections_opened == 0

    def test_unknown_profile(self, executor, engine_spy):
        """Test unknown profiles fail without I/O."""
        with pytest.raises(ProfileNotFoundError, match="default, warehouse"):
            executor.execute("SELECT 1", profile="missing")
        assert engine_spy.engines_created == 0

    def test_sqlite_catalog(self, executor, engine_spy):
        """Test SQLite profiles reject catalog switching."""
        with pytest.raises(EngineError, match="Catalog switching"):
            executor.execute("SELECT 1", catalog="other")
        assert engine_spy.engines_created == 0

    def test_blank_catalog_ignored(self, executor):
        """Test a blank catalog means the profile's own database."""
        assert executor.execute("SELECT 1 AS v", catalog="  ").rows == [[1]]

    def test_cancelled_before_start(self, executor, engine_spy):
        """Test an already-cancelled call never connects."""
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(QueryCancelled):
            executor.execute("SELECT 1", cancel_event=cancel)
        assert engine_spy.engines_created == 0


class TestEngineFailures:
    """Test failures surfaced after I/O."""

    def test_unknown_column(self, executor, engine_spy):
        """Test engine errors pass the driver message through verbatim."""
        with pytest.raises(EngineError, match="no such column: nope"):
            executor.execute("SELECT nope FROM users")
        assert engine_spy.connections_opened == engine_spy.connections_closed == 1

    def test_unknown_table(self, executor):
        """Test a missing table is an engine error."""
        with pytest.raises(EngineError, match="no such table"):
            executor.execute("SELECT * FROM missing_table")

    def test_unreachable_database(self, tmp_path, engine_spy):
        """Test a database that cannot be opened is a connectivity error."""
        missing = tmp_path / "no" / "such" / "dir" / "db.sqlite"
        table = ProfileTable([Profile(name="default", connection_string=f"sqlite:///{missing}")])
        with pytest.raises(ConnectivityError):
            BoundedExecutor(table, engine_factory=engine_spy).execute("SELECT 1")

    def test_missing_sqlite_file_not_created(self, tmp_path, engine_spy):
        """Test a missing SQLite file is a connectivity error and is left uncreated."""
        missing = tmp_path / "absent.sqlite"
        table = ProfileTable([Profile(name="default", connection_string=f"sqlite:///{missing}")])
        with pytest.raises(ConnectivityError):
            BoundedExecutor(table, engine_factory=engine_spy).execute("SELECT 1")
        assert not missing.exists()

    def test_sqlite_opened_read_only(self, executor, engine_spy, sample_db):
        """Test file databases are opened through a read-only URI."""
        executor.execute("SELECT 1")
        url = engine_spy.urls[0]
        assert url.database == f"file:{sample_db}"
        assert url.query["mode"] == "ro"
        assert url.query["uri"] == "true"

    def test_malformed_connection_string(self, engine_spy):
        """Test an unparsable connection string is a connectivity error without I/O."""
        table = ProfileTable([Profile(name="default", connection_string="not a url")])
        with pytest.raises(ConnectivityError, match="invalid connection string"):
            BoundedExecutor(table, engine_factory=engine_spy).execute("SELECT 1")
        assert engine_spy.engines_created == 0

    def test_unknown_driver(self, engine_spy):
        """Test a profile naming an unavailable driver is a connectivity error."""
        table = ProfileTable([Profile(name="default", connection_string="nosuchdb://host/db")])
        with pytest.raises(ConnectivityError, match="nosuchdb"):
            BoundedExecutor(table, engine_factory=engine_spy).execute("SELECT 1")

    @pytest.mark.slow
    def test_timeout(self, executor, engine_spy):
        """Test a query past the command deadline raises the timeout kind."""
        with pytest.raises(QueryTimeoutError) as exc_info:
            executor.execute(ENDLESS_SQL, profile="warehouse")
        assert exc_info.value.kind == "TimeoutError"
        assert "1s" in exc_info.value.message
        assert engine_spy.connections_opened == engine_spy.connections_closed == 1

    @pytest.mark.slow
    def test_cancel_while_running(self, executor, engine_spy):
        """Test cancelling a running query interrupts it and releases the connection."""
        cancel = threading.Event()
        timer = threading.Timer(0.2, cancel.set)
        timer.start()
        try:
            with pytest.raises(QueryCancelled):
                executor.execute(ENDLESS_SQL, cancel_event=cancel)
        finally:
            timer.cancel()
        assert engine_spy.connections_opened == engine_spy.connections_closed == 1


class TestUniqueColumns:
    """Test column name de-duplication."""

    def test_no_duplicates(self):
        """Test distinct names are unchanged."""
        assert unique_columns(["a", "b"]) == ["a", "b"]

    def test_suffixes(self):
        """Test repeats get numbered suffixes."""
        assert unique_columns(["id", "id", "id"]) == ["id", "id_2", "id_3"]

    def test_suffix_collision(self):
        """Test a suffix that is already taken is skipped."""
        assert unique_columns(["id_2", "id", "id"]) == ["id_2", "id", "id_3"]


class TestInertColons:
    """Test colons inside literals and comments are not read as placeholders."""

    def test_colon_word_in_literal(self, executor):
        """Test a ':word' inside a string literal is returned as written."""
        result = executor.execute("SELECT 'ratio :x' AS v")
        assert result.rows == [["ratio :x"]]

    def test_literal_with_same_named_parameter(self, executor):
        """Test a literal ':x' stays text while a real :x placeholder binds."""
        result = executor.execute("SELECT 'ratio :x' AS v, :x AS x", parameters={"x": 1})
        assert result.rows == [["ratio :x", 1]]

    def test_colon_word_in_comment(self, executor):
        """Test a ':word' inside a line comment is ignored."""
        result = executor.execute("SELECT 1 AS v -- see :x")
        assert result.rows == [[1]]

    def test_colon_word_in_block_comment(self, executor):
        """Test a ':word' inside a block comment is ignored."""
        result = executor.execute(
            "SELECT /* :note */ name FROM users WHERE id = :id", parameters={"id": 2}
        )
        assert result.rows == [["user2"]]

    def test_double_colon_in_literal(self, executor):
        """Test consecutive colons inside a literal survive unchanged."""
        result = executor.execute("SELECT 'a::b' AS v, '12:30' AS t")
        assert result.rows == [["a::b", "12:30"]]

    def test_colon_in_quoted_identifier(self, executor):
        """Test a ':word' inside a quoted alias is kept as the column name."""
        result = executor.execute('SELECT 1 AS "at :x"')
        assert result.columns == ["at :x"]
