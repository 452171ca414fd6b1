from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path


def _parse_json_output(stdout: str) -> dict:
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    return json.loads(lines[-1])


def _run_seed(repo_root: Path, database_url: str, *extra: str) -> subprocess.CompletedProcess:
    script_path = repo_root / "backend" / "scripts" / "seed_allocation_data.py"
    env = os.environ.copy()
    env["APP_ENV"] = "test"
    return subprocess.run(
        [sys.executable, str(script_path), "--database-url", database_url, *extra],
        cwd=str(repo_root),
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )


def test_seed_creates_strategies_and_demo_units(tmp_path):
    repo_root = Path(__file__).resolve().parents[2]
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'allocation.db'}"

    completed = _run_seed(repo_root, database_url, "--demo")

    assert completed.returncode == 0, completed.stderr
    payload = _parse_json_output(completed.stdout)
    assert payload["status"] == "ok"
    assert "COST_OPTIMIZATION" in payload["strategies_created"]
    assert payload["units_created"] == 18


def test_seed_is_idempotent(tmp_path):
    repo_root = Path(__file__).resolve().parents[2]
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'allocation.db'}"

    _run_seed(repo_root, database_url, "--demo")
    completed = _run_seed(repo_root, database_url, "--demo")

    assert completed.returncode == 0, completed.stderr
    payload = _parse_json_output(completed.stdout)
    assert payload["strategies_created"] == []
    assert payload["units_created"] == 0
