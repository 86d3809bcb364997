import io

import pytest

from engine.cli.main import main
from engine.cli.printer import Output, TableWriter
from engine.cli.shell import EXIT_FAILURE, EXIT_OK, EXIT_OUTPUT_LOST, InputSource, run_session
from engine.session import EngineConfig, create_session


@pytest.fixture
def select_one(fake_engine):
    fake_engine.script("select 1", columns=[("1", "INTEGER")], batches=[[(1,)]])
    return fake_engine


def run(engine, lines, sink, config, fmt="table", **kw):
    return run_session(engine, fmt, lines, sink, config, **kw)


def test_select_one(select_one, sink, config):
    assert run(select_one, ["select 1;"], sink, config) == EXIT_OK
    out = sink.out.getvalue()
    assert "| 1 |" in out
    assert "1 row in set." in out
    assert sink.err.getvalue() == ""
    assert select_one.closed


def test_statement_spanning_lines(fake_engine, sink, config):
    run(fake_engine, ["select", "  1", ";"], sink, config)
    assert [q.sql for q in fake_engine.queries] == ["select\n  1"]


def test_several_statements_on_one_line(select_one, sink, config):
    run(select_one, ["select 1; select 1;"], sink, config)
    assert len(select_one.queries) == 2


def test_error_does_not_end_the_session(select_one, sink, config):
    assert run(select_one, ["select * from nope;", "select 1;"], sink, config) == EXIT_OK
    assert "Error: Planning error: table not found in: select * from nope" in sink.err.getvalue()
    assert "1 row in set." in sink.out.getvalue()


def test_fail_on_error(select_one, sink, config):
    code = run(select_one, ["select * from nope;", "select 1;"], sink, config, fail_on_error=True)
    assert code == EXIT_FAILURE


def test_unterminated_quote_is_never_executed(fake_engine, sink, config):
    assert run(fake_engine, ["select 'abc"], sink, config) == EXIT_OK
    assert fake_engine.queries == []
    assert "unterminated single-quoted string" in sink.err.getvalue()


def test_statement_without_terminator_runs_at_end_of_input(select_one, sink, config):
    run(select_one, ["select 1"], sink, config)
    assert len(select_one.queries) == 1


def test_format_switch_applies_to_later_statements(select_one, sink, config):
    run(select_one, ["select 1;", "format csv", "select 1;"], sink, config)
    out = sink.out.getvalue()
    table, _, rest = out.partition("Output format is csv.\n")
    assert "+---+" in table
    assert rest.startswith("1\n1\n1 row in set.")


def test_quit_stops_processing(select_one, sink, config):
    assert run(select_one, ["select 1;", "quit", "select 1;"], sink, config) == EXIT_OK
    assert len(select_one.queries) == 1
    assert select_one.closed


def test_meta_command_inside_statement_is_sql(fake_engine, sink, config):
    run(fake_engine, ["select", "quit;"], sink, config)
    assert [q.sql for q in fake_engine.queries] == ["select\nquit"]


def test_unknown_meta_command_is_reported(select_one, sink, config):
    run(select_one, ["\\nosuch", "select 1;"], sink, config)
    assert "Error: unknown command: \\nosuch" in sink.err.getvalue()
    assert len(select_one.queries) == 1


def test_history_is_written(select_one, sink, config):
    run(select_one, ["select 1;", "select", "2;", "\\q"], sink, config)
    with open(config.history_file, encoding="utf-8") as f:
        assert f.read() == "select 1;\nselect 2;\n"


def test_missing_engine_session(sink, config):
    assert run(None, ["select 1;"], sink, config) == EXIT_FAILURE
    assert "no engine session" in sink.err.getvalue()


def test_unknown_initial_format(fake_engine, sink, config):
    assert run(fake_engine, ["select 1;"], sink, config, fmt="xml") == EXIT_FAILURE
    assert fake_engine.closed


class BrokenStream(io.StringIO):
    def write(self, s):
        raise BrokenPipeError(32, "Broken pipe")


def test_lost_output_ends_the_session(select_one, config):
    sink = Output(BrokenStream(), io.StringIO())
    assert run(select_one, ["select 1;", "select 1;"], sink, config) == EXIT_OUTPUT_LOST
    assert len(select_one.queries) == 1
    assert select_one.closed


class InterruptedInput(InputSource):
    def __init__(self, *items):
        self.items = list(items)

    def read_line(self, prompt):
        if not self.items:
            return None
        item = self.items.pop(0)
        if item is KeyboardInterrupt:
            raise KeyboardInterrupt
        return item


def test_ctrl_c_at_prompt_discards_partial_statement(select_one, sink, config):
    source = InterruptedInput("select 'half", KeyboardInterrupt, "select 1;")
    assert run(select_one, source, sink, config) == EXIT_OK
    assert [q.sql for q in select_one.queries] == ["select 1"]


# --------------------------- 真实引擎 ---------------------------

@pytest.fixture
def duck():
    return create_session(EngineConfig(threads=1, batch_size=2))


def test_tables_persist_across_statements(duck, sink, config):
    lines = [
        "create table t (a integer, b varchar);",
        "insert into t values (1, 'x'), (2, null), (3, 'z');",
        "format csv",
        "select a, b from t order by a;",
    ]
    assert run(duck, lines, sink, config) == EXIT_OK
    out = sink.out.getvalue()
    assert "a,b\n1,x\n2,\n3,z\n3 rows in set." in out
    assert sink.err.getvalue() == ""


def test_engine_error_kinds(duck, sink, config):
    run(duck, ["select * from missing_table;", "selec 1;", "select 1;"], sink, config)
    err = sink.err.getvalue()
    assert "Error: Planning error: Table with name missing_table does not exist" in err
    assert "Error: Parse error:" in err
    assert "1 row in set." in sink.out.getvalue()


def test_json_output(duck, sink, config):
    run(duck, ["select 1 as a, null as b, 'x' as c;"], sink, config, fmt="json")
    assert sink.out.getvalue().splitlines()[0] == '{"a": 1, "b": null, "c": "x"}'


def test_main_runs_commands(capsys):
    code = main(["-c", "select 42 as answer", "--no-history", "--format", "csv", "-q"])
    assert code == EXIT_OK
    assert capsys.readouterr().out == "answer\n42\n"


def test_main_runs_files(tmp_path, capsys):
    script = tmp_path / "script.sql"
    script.write_text("create table t as select * from range(3) r(n);\n"
                      "select sum(n) as total\n  from t;\n", encoding="utf-8")
    code = main(["-f", str(script), "--no-history", "--format", "tsv", "-q"])
    assert code == EXIT_OK
    assert capsys.readouterr().out.endswith("total\n3\n")


def test_main_missing_file(tmp_path, capsys):
    code = main(["-f", str(tmp_path / "nope.sql"), "--no-history"])
    assert code == EXIT_FAILURE
    assert "Error:" in capsys.readouterr().err


def test_main_runs_commands_then_files(tmp_path, capsys):
    first = tmp_path / "first.sql"
    first.write_text("select 'one' as from_file\n", encoding="utf-8")
    second = tmp_path / "second.sql"
    second.write_text("select 'two' as from_file;\n", encoding="utf-8")
    code = main(["-c", "select 7 as from_cmd", "-f", str(first), "-f", str(second),
                 "--no-history", "--format", "csv", "-q"])
    assert code == EXIT_OK
    assert capsys.readouterr().out == "from_cmd\n7\nfrom_file\none\nfrom_file\ntwo\n"


def test_backslash_in_string_literal(duck, sink, config):
    lines = [r"select '\' as x;", r"select replace('a\b', '\', '/') as y;"]
    assert run(duck, lines, sink, config, fmt="csv") == EXIT_OK
    assert sink.err.getvalue() == ""
    out = sink.out.getvalue()
    assert "x\n\\\n" in out
    assert "y\na/b\n" in out


def test_ctrl_c_while_finishing_output_keeps_the_session(select_one, sink, config, monkeypatch):
    original = TableWriter.finish
    calls = []

    def finish(self):
        calls.append(1)
        if len(calls) == 1:
            raise KeyboardInterrupt
        original(self)

    monkeypatch.setattr(TableWriter, "finish", finish)
    assert run(select_one, ["select 1;", "select 1;"], sink, config) == EXIT_OK
    assert sink.err.getvalue() == "Query cancelled.\n"
    assert sink.out.getvalue().count("1 row in set.") == 1
    assert len(select_one.queries) == 2
    assert select_one.closed
