from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from git_dag_analysis.cli import main

from sample_git import init_sample_repo

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def test_root_help_mentions_commands(tmp_path: Path) -> None:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(Path(__file__).resolve().parents[1] / "src")
    proc = subprocess.run(
        [sys.executable, "-m", "git_dag_analysis", "--help"],
        cwd=str(tmp_path),
        env=env,
        text=True,
        capture_output=True,
    )
    assert proc.returncode == 0, proc.stderr
    assert "reports" in proc.stdout
    assert "process-only" in proc.stdout
    assert "validate" in proc.stdout


def test_not_a_repository(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    assert main(["--repo", str(tmp_path), "reports"]) == 2
    assert "Not a git repository" in capsys.readouterr().err


@needs_git
def test_reports_end_to_end(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = tmp_path / "repo"
    ids = init_sample_repo(repo)
    out_dir = tmp_path / "out"

    code = main(
        [
            "--repo",
            str(repo),
            "--config",
            str(tmp_path / "config.json"),
            "reports",
            "--jobs",
            "2",
            "--report-dir",
            str(out_dir),
        ]
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "Run plan:" in out
    assert "Commit Report" in out and "Tag Report" in out and "Diagnostics" in out
    assert f"Largest Contributing Commit Object Id: {ids['first']}" in out
    assert "Blob Size: 4.88 KB" in out
    data = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
    assert data["commit_count"] == 3

    assert main(["validate", "--report-dir", str(out_dir)]) == 0


@needs_git
def test_reports_section_flags(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = tmp_path / "repo"
    init_sample_repo(repo)

    assert main(["reports", "--repo", str(repo), "--config", str(tmp_path / "c.json"), "-b"]) == 0

    out = capsys.readouterr().out
    assert "Blob Report" in out
    assert "Diagnostics" in out
    assert "Commit Report" not in out
    assert "Tag Report" not in out


@needs_git
def test_save_deps_builds_then_reuses_snapshot(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = tmp_path / "repo"
    init_sample_repo(repo)
    snap = tmp_path / "deps.jsonl.gz"
    base = ["--repo", str(repo), "--config", str(tmp_path / "c.json")]

    assert main([*base, "process-only", "--save-deps", str(snap)]) == 0
    first = capsys.readouterr().out
    assert snap.exists()
    assert "Saved graph snapshot" in first
    assert "Processed 3 commits" in first

    assert main([*base, "reports", "--all", "--save-deps", str(snap)]) == 0
    second = capsys.readouterr().out
    assert "Loading graph snapshot" in second
    assert "Total Commits: 3" in second


@needs_git
def test_config_file_is_honored(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = tmp_path / "repo"
    init_sample_repo(repo)
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"top_blobs": 1, "jobs": 1}), encoding="utf-8")

    assert main(["--repo", str(repo), "--config", str(config), "reports", "--blobs"]) == 0

    out = capsys.readouterr().out
    assert "Top 1 Largest Blobs:" in out
    assert out.count("\tBlob Size:") == 1
