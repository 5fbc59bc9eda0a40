from __future__ import annotations

import pytest

from task_supervisor.cli.app import list_tasks, run


@pytest.mark.anyio
class TestCli:
    async def test_list_tasks(self, tmp_path, capsys):
        tasks = tmp_path / "tasks"
        tasks.mkdir()
        for name in ("startup", "build", "notes.txt"):
            (tasks / (name if "." in name else f"{name}.py")).write_text("")

        await list_tasks(root=tmp_path)

        assert capsys.readouterr().out.split() == ["build", "startup"]

    async def test_list_without_tasks_dir(self, tmp_path, capsys):
        await list_tasks(root=tmp_path)
        assert capsys.readouterr().out == ""

    async def test_run_missing_task(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            await run("missing", root=tmp_path, log_level="ERROR")

        assert exc_info.value.code == 2
