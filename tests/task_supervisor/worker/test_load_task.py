from __future__ import annotations

import sys
from textwrap import dedent

import pytest

from task_supervisor.worker import load_task


@pytest.fixture(autouse=True)
def restore_argv(monkeypatch):
    monkeypatch.setattr(sys, "argv", list(sys.argv))


def test_loads_task_callable(tmp_path):
    script = tmp_path / "greet.py"
    script.write_text(
        dedent(
            """
            import sys

            def task():
                return {"args": sys.argv[1:]}
            """
        )
    )

    task = load_task(script, ["--fast"])

    assert task() == {"args": ["--fast"]}
    assert sys.argv == [str(script), "--fast"]


def test_script_without_task_exits(tmp_path):
    script = tmp_path / "empty.py"
    script.write_text("VALUE = 1\n")

    with pytest.raises(SystemExit) as exc_info:
        load_task(script)

    assert exc_info.value.code == 2
