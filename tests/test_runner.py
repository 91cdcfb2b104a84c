"""Tests for the tutorial script runner."""

import asyncio

import pytest

from sql_tutorial.errors import (
    DatabaseConnectionError,
    RunnerError,
    ScriptError,
    StatementError,
    TransactionError,
)
from sql_tutorial.models.config import ConnectionConfig, Driver
from sql_tutorial.models.statement import RowCount, Statement
from sql_tutorial.runner import ResultSet, TutorialRunner, session
from sql_tutorial.tutorial import PLAYER_DDL, PLAYER_TEAM_DDL, TEAM_DDL, create_schema

INSERT_PLAYER = "INSERT INTO player (id, name, height) VALUES (?, ?, ?)"
INSERT_TEAM = "INSERT INTO team (id, name, city) VALUES (?, ?, ?)"


async def _count(runner: TutorialRunner, table: str) -> int:
    rows = await runner.get_query(f"SELECT COUNT(*) AS n FROM {table}")
    return rows[0]["n"]


# -- Schema creation order --


@pytest.mark.asyncio
async def test_create_tables_in_dependency_order(runner):
    for ddl in (PLAYER_DDL, TEAM_DDL, PLAYER_TEAM_DDL):
        result = await runner.execute(ddl)
        assert isinstance(result, RowCount)
    assert await runner.list_tables() == ["player", "player_team", "team"]


@pytest.mark.asyncio
async def test_player_team_before_parents_fails(runner):
    with pytest.raises(StatementError, match="foreign key"):
        await runner.execute(PLAYER_TEAM_DDL)
    assert not await runner.exists_table("player_team")


@pytest.mark.asyncio
async def test_player_team_after_player_only_fails(runner):
    await runner.execute(PLAYER_DDL)
    with pytest.raises(StatementError) as exc_info:
        await runner.execute(PLAYER_TEAM_DDL)
    assert exc_info.value.message.endswith("missing table(s): team")
    assert await runner.list_tables() == ["player"]


# -- Constraints --


@pytest.mark.asyncio
async def test_negative_height_violates_check(tutorial_runner):
    with pytest.raises(StatementError, match="CHECK constraint failed"):
        await tutorial_runner.execute(INSERT_PLAYER, (1, "Short", -1))
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_positive_height_inserts(tutorial_runner):
    result = await tutorial_runner.execute(INSERT_PLAYER, (1, "Tall", 200))
    assert result == RowCount(count=1, command="INSERT")


@pytest.mark.asyncio
async def test_duplicate_team_name_and_city_rejected(tutorial_runner):
    await tutorial_runner.execute(INSERT_TEAM, (1, "Harbor Hawks", "Rijeka"))
    with pytest.raises(StatementError, match="UNIQUE constraint failed"):
        await tutorial_runner.execute(INSERT_TEAM, (2, "Harbor Hawks", "Rijeka"))
    assert await _count(tutorial_runner, "team") == 1


@pytest.mark.asyncio
async def test_same_team_name_in_other_city_allowed(tutorial_runner):
    await tutorial_runner.execute(INSERT_TEAM, (1, "Harbor Hawks", "Rijeka"))
    await tutorial_runner.execute(INSERT_TEAM, (2, "Harbor Hawks", "Lagos"))
    assert await _count(tutorial_runner, "team") == 2


@pytest.mark.asyncio
async def test_player_team_row_needs_existing_parents(tutorial_runner):
    with pytest.raises(StatementError, match="FOREIGN KEY constraint failed"):
        await tutorial_runner.execute(
            "INSERT INTO player_team (player_id, team_id, season) VALUES (?, ?, ?)",
            (99, 99, 2024),
        )


@pytest.mark.asyncio
async def test_default_values_applied(tutorial_runner):
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    await tutorial_runner.execute(INSERT_TEAM, (1, "Hawks", "Rijeka"))
    await tutorial_runner.execute(
        "INSERT INTO player_team (player_id, team_id, season) VALUES (1, 1, 2024)"
    )
    player = await tutorial_runner.read_table("player")
    assert player[0]["country"] == "unknown"
    link = await tutorial_runner.read_table("player_team")
    assert not link[0]["is_captain"]


# -- Results --


@pytest.mark.asyncio
async def test_select_returns_single_pass_result_set(seeded_runner):
    result = await seeded_runner.execute("SELECT id, name FROM player ORDER BY id")
    assert isinstance(result, ResultSet)
    assert result.columns == ["id", "name"]

    names = [row["name"] async for row in result]
    assert names[0] == "Marta Kovac"
    assert len(names) == 5
    # Exhausted: only re-executing gives the rows again
    assert await result.fetchone() is None
    assert await result.collect() == []


@pytest.mark.asyncio
async def test_empty_select_still_has_columns(tutorial_runner):
    result = await tutorial_runner.execute("SELECT id, name FROM player")
    assert isinstance(result, ResultSet)
    assert result.columns == ["id", "name"]
    assert await result.collect() == []


@pytest.mark.asyncio
async def test_ddl_reports_zero_rows(runner):
    result = await runner.execute("CREATE TABLE scratch (x INTEGER)")
    assert result == RowCount(count=0, command="CREATE")


@pytest.mark.asyncio
async def test_update_reports_affected_rows(seeded_runner):
    result = await seeded_runner.execute(
        "UPDATE player SET country = ? WHERE height > ?", ("X", 190)
    )
    assert isinstance(result, RowCount)
    assert result.count == 3


@pytest.mark.asyncio
async def test_statement_error_carries_server_message(runner):
    with pytest.raises(StatementError) as exc_info:
        await runner.execute("SELEC 1")
    assert "syntax error" in exc_info.value.message
    assert exc_info.value.sql == "SELEC 1"


@pytest.mark.asyncio
async def test_statement_object_accepted(runner):
    result = await runner.execute(Statement(sql="SELECT ? AS v", params=(7,)))
    assert await result.collect() == [{"v": 7}]


@pytest.mark.asyncio
async def test_statement_object_with_extra_params_rejected(runner):
    with pytest.raises(ValueError):
        await runner.execute(Statement(sql="SELECT 1"), (1,))


@pytest.mark.asyncio
async def test_get_query_rejects_non_query(tutorial_runner):
    with pytest.raises(StatementError, match="does not return rows"):
        await tutorial_runner.get_query("DELETE FROM player")


# -- Transactions --


@pytest.mark.asyncio
async def test_rollback_discards_created_table(runner):
    await runner.begin()
    await runner.execute("CREATE TABLE scratch (x INTEGER)")
    await runner.execute("INSERT INTO scratch VALUES (1)")
    await runner.rollback()

    rows = await runner.get_query("SELECT name FROM sqlite_master WHERE name = 'scratch'")
    assert rows == []


@pytest.mark.asyncio
async def test_rollback_discards_inserted_rows(tutorial_runner):
    await tutorial_runner.begin()
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    assert await _count(tutorial_runner, "player") == 1
    await tutorial_runner.rollback()
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_commit_persists(tutorial_runner):
    await tutorial_runner.begin()
    assert tutorial_runner.in_transaction
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    await tutorial_runner.commit()
    assert not tutorial_runner.in_transaction
    assert await _count(tutorial_runner, "player") == 1


@pytest.mark.asyncio
async def test_failure_aborts_scope_until_rollback(tutorial_runner):
    await tutorial_runner.begin()
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    with pytest.raises(StatementError):
        await tutorial_runner.execute(INSERT_PLAYER, (2, "Bad", -1))
    assert tutorial_runner.aborted

    with pytest.raises(TransactionError):
        await tutorial_runner.execute(INSERT_PLAYER, (3, "Ok", 170))
    with pytest.raises(TransactionError):
        await tutorial_runner.commit()

    await tutorial_runner.rollback()
    assert not tutorial_runner.aborted
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_autocommit_failure_keeps_earlier_statements(tutorial_runner):
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    with pytest.raises(StatementError):
        await tutorial_runner.execute(INSERT_PLAYER, (2, "Bad", -1))
    assert not tutorial_runner.aborted
    assert await _count(tutorial_runner, "player") == 1


@pytest.mark.asyncio
async def test_commit_without_begin_fails(runner):
    with pytest.raises(TransactionError):
        await runner.commit()


@pytest.mark.asyncio
async def test_rollback_without_begin_fails(runner):
    with pytest.raises(TransactionError):
        await runner.rollback()


@pytest.mark.asyncio
async def test_nested_begin_fails(runner):
    await runner.begin()
    with pytest.raises(TransactionError):
        await runner.begin()
    await runner.rollback()


@pytest.mark.asyncio
async def test_transaction_context_commits(tutorial_runner):
    async with tutorial_runner.transaction():
        await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    assert await _count(tutorial_runner, "player") == 1


@pytest.mark.asyncio
async def test_transaction_context_rolls_back_on_error(tutorial_runner):
    with pytest.raises(StatementError):
        async with tutorial_runner.transaction():
            await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
            await tutorial_runner.execute(INSERT_PLAYER, (2, "Bad", -1))
    assert not tutorial_runner.in_transaction
    assert await _count(tutorial_runner, "player") == 0


# -- Scripts --


@pytest.mark.asyncio
async def test_run_script_reports_each_statement(tutorial_runner):
    outcomes = await tutorial_runner.run_script(
        [
            Statement(sql=INSERT_PLAYER, params=(1, "Ana", 180)),
            "SELECT name FROM player",
        ]
    )
    assert [o.ok for o in outcomes] == [True, True]
    assert outcomes[0].row_count == 1
    assert outcomes[1].rows == [{"name": "Ana"}]
    assert outcomes[1].columns == ["name"]


@pytest.mark.asyncio
async def test_run_script_halts_on_failure(tutorial_runner):
    script = [
        Statement(sql=INSERT_PLAYER, params=(1, "Ana", 180)),
        Statement(sql=INSERT_PLAYER, params=(2, "Bad", -1)),
        Statement(sql=INSERT_PLAYER, params=(3, "Never", 170)),
    ]
    with pytest.raises(ScriptError) as exc_info:
        await tutorial_runner.run_script(script)

    outcomes = exc_info.value.outcomes
    assert len(outcomes) == 2
    assert outcomes[1].error is not None
    assert "CHECK constraint failed" in exc_info.value.message
    assert await _count(tutorial_runner, "player") == 1


@pytest.mark.asyncio
async def test_run_script_continue_on_error(tutorial_runner):
    script = [
        Statement(sql=INSERT_PLAYER, params=(1, "Ana", 180)),
        Statement(sql=INSERT_PLAYER, params=(2, "Bad", -1)),
        Statement(sql=INSERT_PLAYER, params=(3, "Ola", 170)),
    ]
    outcomes = await tutorial_runner.run_script(script, continue_on_error=True)
    assert [o.ok for o in outcomes] == [True, False, True]
    assert await _count(tutorial_runner, "player") == 2


@pytest.mark.asyncio
async def test_transactional_script_rolls_back_everything(tutorial_runner):
    script = [
        Statement(sql=INSERT_PLAYER, params=(1, "Ana", 180)),
        Statement(sql=INSERT_PLAYER, params=(2, "Bad", -1)),
    ]
    with pytest.raises(ScriptError):
        await tutorial_runner.run_script(script, transactional=True)
    assert not tutorial_runner.in_transaction
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_transactional_with_continue_on_error_rejected(runner):
    with pytest.raises(ValueError):
        await runner.run_script(["SELECT 1"], transactional=True, continue_on_error=True)


# -- Table helpers --


@pytest.mark.asyncio
async def test_list_fields_in_declaration_order(tutorial_runner):
    fields = await tutorial_runner.list_fields("team")
    assert fields == ["id", "name", "city", "founded"]


@pytest.mark.asyncio
async def test_list_fields_missing_table(runner):
    with pytest.raises(StatementError):
        await runner.list_fields("nope")


@pytest.mark.asyncio
async def test_write_and_read_table(tutorial_runner):
    rows = [
        {"id": 1, "name": "Ana", "height": 180},
        {"id": 2, "name": "Ben", "height": 190},
    ]
    assert await tutorial_runner.write_table("player", rows) == 2
    read = await tutorial_runner.read_table("player")
    assert [r["name"] for r in read] == ["Ana", "Ben"]


@pytest.mark.asyncio
async def test_write_table_is_all_or_nothing(tutorial_runner):
    rows = [
        {"id": 1, "name": "Ana", "height": 180},
        {"id": 2, "name": "Bad", "height": -5},
    ]
    with pytest.raises(StatementError):
        await tutorial_runner.write_table("player", rows)
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_write_table_rejects_ragged_rows(tutorial_runner):
    rows = [{"id": 1, "name": "Ana"}, {"id": 2, "height": 180}]
    with pytest.raises(ValueError):
        await tutorial_runner.write_table("player", rows)


@pytest.mark.asyncio
async def test_write_table_empty(tutorial_runner):
    assert await tutorial_runner.write_table("player", []) == 0


@pytest.mark.asyncio
async def test_remove_table(runner):
    await runner.execute("CREATE TABLE scratch (x INTEGER)")
    await runner.remove_table("scratch")
    assert not await runner.exists_table("scratch")


@pytest.mark.asyncio
async def test_table_rejects_bad_identifier(runner):
    with pytest.raises(ValueError):
        runner.table("player; DROP TABLE team")


# -- Connection lifecycle --


@pytest.mark.asyncio
async def test_unreachable_database_raises_connection_error(tmp_path):
    config = ConnectionConfig(driver=Driver.SQLITE, database=str(tmp_path / "missing" / "x.db"))
    with pytest.raises(DatabaseConnectionError) as exc_info:
        await TutorialRunner.connect(config)
    assert isinstance(exc_info.value, ConnectionError)


@pytest.mark.asyncio
async def test_disconnect_after_failure_releases_connection(file_config):
    first = await TutorialRunner.connect(file_config)
    await create_schema(first)
    await first.begin()
    await first.execute(INSERT_PLAYER, (1, "Ana", 180))
    with pytest.raises(StatementError):
        await first.execute(INSERT_PLAYER, (2, "Bad", -1))
    await first.disconnect()
    assert first.closed

    # A lingering write lock would make this insert time out
    second = await TutorialRunner.connect(file_config)
    try:
        await second.execute(INSERT_PLAYER, (3, "Ola", 170))
        assert await _count(second, "player") == 1
    finally:
        await second.disconnect()


@pytest.mark.asyncio
async def test_disconnect_rolls_back_open_transaction(file_config):
    first = await TutorialRunner.connect(file_config)
    await create_schema(first)
    await first.begin()
    await first.execute(INSERT_PLAYER, (1, "Ana", 180))
    await first.disconnect()

    async with session(file_config) as second:
        assert await _count(second, "player") == 0


@pytest.mark.asyncio
async def test_disconnect_twice_is_noop(memory_config):
    runner = await TutorialRunner.connect(memory_config)
    await runner.disconnect()
    await runner.disconnect()
    assert runner.closed


@pytest.mark.asyncio
async def test_execute_after_disconnect_fails(memory_config):
    runner = await TutorialRunner.connect(memory_config)
    await runner.disconnect()
    with pytest.raises(RunnerError):
        await runner.execute("SELECT 1")


@pytest.mark.asyncio
async def test_session_disconnects_on_error(memory_config):
    with pytest.raises(StatementError):
        async with session(memory_config) as runner:
            await runner.execute("SELEC 1")
    assert runner.closed


@pytest.mark.asyncio
async def test_runner_is_async_context_manager(memory_config):
    async with await TutorialRunner.connect(memory_config) as runner:
        await runner.execute("SELECT 1")
    assert runner.closed


# -- Transaction statements --


class RecordingDatabase:
    """Database stand-in that records which backend calls were made."""

    def __init__(self):
        self.calls = []
        self.in_transaction = False

    async def execute(self, sql, params=(), *, timeout=None):
        self.calls.append(f"execute {sql}")

    async def begin(self):
        self.calls.append("begin")
        self.in_transaction = True

    async def commit(self):
        self.calls.append("commit")
        self.in_transaction = False

    async def rollback(self):
        self.calls.append("rollback")
        self.in_transaction = False

    async def close(self):
        self.calls.append("close")


@pytest.mark.asyncio
async def test_transaction_statements_use_backend_scope():
    db = RecordingDatabase()
    runner = TutorialRunner(db)
    assert await runner.execute("begin transaction;") == RowCount(count=0, command="BEGIN")
    assert runner.in_transaction
    await runner.execute("COMMIT")
    await runner.execute("START TRANSACTION")
    await runner.execute("ROLLBACK")
    await runner.disconnect()
    assert db.calls == ["begin", "commit", "begin", "rollback", "close"]


@pytest.mark.asyncio
async def test_commit_statement_persists(tutorial_runner):
    await tutorial_runner.execute("BEGIN")
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    await tutorial_runner.execute("COMMIT")
    assert not tutorial_runner.in_transaction
    assert await _count(tutorial_runner, "player") == 1


@pytest.mark.asyncio
async def test_rollback_statement_recovers_aborted_scope(tutorial_runner):
    await tutorial_runner.execute("BEGIN")
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    with pytest.raises(StatementError):
        await tutorial_runner.execute(INSERT_PLAYER, (2, "Bad", -1))
    with pytest.raises(TransactionError):
        await tutorial_runner.execute("SELECT 1")

    assert await tutorial_runner.execute("ROLLBACK") == RowCount(count=0, command="ROLLBACK")
    assert not tutorial_runner.in_transaction
    assert not tutorial_runner.aborted
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_unsupported_transaction_statement_rejected(runner):
    with pytest.raises(StatementError, match="unsupported transaction statement"):
        await runner.execute("BEGIN IMMEDIATE")
    assert not runner.in_transaction


@pytest.mark.asyncio
async def test_transactional_script_rejects_transaction_statements(runner):
    with pytest.raises(ValueError):
        await runner.run_script(["BEGIN", "SELECT 1", "COMMIT"], transactional=True)
    assert not runner.in_transaction


@pytest.mark.asyncio
async def test_continue_on_error_inside_aborted_scope_keeps_outcomes(tutorial_runner):
    await tutorial_runner.begin()
    outcomes = await tutorial_runner.run_script(
        [Statement(sql=INSERT_PLAYER, params=(1, "Bad", -1)), "SELECT 1"],
        continue_on_error=True,
    )
    assert [o.ok for o in outcomes] == [False, False]
    assert "CHECK constraint failed" in outcomes[0].error
    assert "rollback required" in outcomes[1].error
    assert tutorial_runner.aborted
    await tutorial_runner.rollback()


@pytest.mark.asyncio
async def test_script_rollback_statement_ends_aborted_scope(tutorial_runner):
    script = [
        "BEGIN",
        Statement(sql=INSERT_PLAYER, params=(1, "Bad", -1)),
        Statement(sql=INSERT_PLAYER, params=(2, "Ignored", 170)),
        "ROLLBACK",
        Statement(sql=INSERT_PLAYER, params=(3, "Ola", 170)),
    ]
    outcomes = await tutorial_runner.run_script(script, continue_on_error=True)
    assert [o.ok for o in outcomes] == [True, False, False, True, True]
    assert not tutorial_runner.in_transaction
    assert await tutorial_runner.get_query("SELECT id FROM player") == [{"id": 3}]


@pytest.mark.asyncio
async def test_halting_script_in_aborted_scope_raises_script_error(tutorial_runner):
    await tutorial_runner.begin()
    with pytest.raises(StatementError):
        await tutorial_runner.execute(INSERT_PLAYER, (1, "Bad", -1))
    with pytest.raises(ScriptError) as exc_info:
        await tutorial_runner.run_script(["SELECT 1"])
    assert len(exc_info.value.outcomes) == 1
    await tutorial_runner.rollback()


# -- Concurrent callers --


@pytest.mark.asyncio
async def test_other_task_waits_for_open_scope(tutorial_runner):
    scope_open = asyncio.Event()

    async def scoped():
        await tutorial_runner.begin()
        await tutorial_runner.execute(INSERT_TEAM, (1, "Hawks", "Rijeka"))
        scope_open.set()
        await asyncio.sleep(0.05)
        await tutorial_runner.rollback()

    async def plain():
        await scope_open.wait()
        await tutorial_runner.execute(INSERT_PLAYER, (9, "Solo", 190))

    await asyncio.gather(scoped(), plain())
    assert await tutorial_runner.get_query("SELECT id FROM player") == [{"id": 9}]
    assert await _count(tutorial_runner, "team") == 0


@pytest.mark.asyncio
async def test_other_task_write_table_is_not_absorbed(tutorial_runner):
    scope_open = asyncio.Event()

    async def scoped():
        async with tutorial_runner.transaction():
            scope_open.set()
            await asyncio.sleep(0.05)
            await tutorial_runner.execute(INSERT_PLAYER, (2, "Bad", -1))

    async def writer():
        await scope_open.wait()
        return await tutorial_runner.write_table(
            "team", [{"id": 1, "name": "Hawks", "city": "Rijeka"}]
        )

    results = await asyncio.gather(scoped(), writer(), return_exceptions=True)
    assert isinstance(results[0], StatementError)
    assert results[1] == 1
    assert await _count(tutorial_runner, "team") == 1


@pytest.mark.asyncio
async def test_scope_left_by_finished_task_is_continued(tutorial_runner):
    await asyncio.create_task(tutorial_runner.begin())
    await tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180))
    await tutorial_runner.rollback()
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_waiting_caller_resumes_when_scope_owner_finishes(tutorial_runner):
    started = asyncio.Event()

    async def opener():
        await tutorial_runner.begin()
        started.set()
        await asyncio.sleep(0.05)

    task = asyncio.create_task(opener())
    await started.wait()
    await asyncio.wait_for(tutorial_runner.execute(INSERT_PLAYER, (1, "Ana", 180)), 2)
    await task
    assert tutorial_runner.in_transaction
    await tutorial_runner.rollback()
    assert await _count(tutorial_runner, "player") == 0


@pytest.mark.asyncio
async def test_disconnect_wakes_waiting_callers(memory_config):
    runner = await TutorialRunner.connect(memory_config)
    started = asyncio.Event()
    release = asyncio.Event()

    async def opener():
        await runner.begin()
        started.set()
        await release.wait()

    task = asyncio.create_task(opener())
    await started.wait()
    waiter = asyncio.create_task(runner.execute("SELECT 1"))
    await asyncio.sleep(0)
    await runner.disconnect()
    with pytest.raises(RunnerError):
        await asyncio.wait_for(waiter, 2)
    release.set()
    await task


# -- Result columns --


@pytest.mark.asyncio
async def test_duplicate_column_names_are_suffixed(runner):
    result = await runner.execute("SELECT 1 AS id, 2 AS id, 3 AS id_1")
    assert result.columns == ["id", "id_2", "id_1"]
    assert await result.collect() == [{"id": 1, "id_2": 2, "id_1": 3}]
