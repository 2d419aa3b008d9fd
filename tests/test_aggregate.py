from __future__ import annotations

from git_dag_analysis.analysis_aggregate import ReportAggregator
from git_dag_analysis.contribution import ContributionAnalyzer
from git_dag_analysis.graph import build_graph
from git_dag_analysis.models import BlobRecord, TreeRecord

from synthetic import FakeRepo


def test_top_blobs_keeps_largest_with_id_tiebreak() -> None:
    agg = ReportAggregator(top_blobs=3)
    for n, size in enumerate([5, 50, 7, 50, 1, 30, 50]):
        agg.observe(BlobRecord(id=bytes([n]) * 20, size=size))
    assert agg.top_blobs() == [(50, b"\x01" * 20), (50, b"\x03" * 20), (50, b"\x06" * 20)]


def test_top_blobs_disabled() -> None:
    agg = ReportAggregator(top_blobs=0)
    agg.observe(BlobRecord(id=b"\x01" * 20, size=5))
    assert agg.top_blobs() == []


def test_largest_tree_prefers_smaller_id_on_tie() -> None:
    agg = ReportAggregator()
    agg.observe(TreeRecord(id=b"\x05" * 20, size=10, entries=()))
    agg.observe(TreeRecord(id=b"\x02" * 20, size=10, entries=()))
    agg.observe(TreeRecord(id=b"\x09" * 20, size=9, entries=()))
    assert (agg.largest_tree_id, agg.largest_tree_size) == (b"\x02" * 20, 10)


def _report_for(repo: FakeRepo, **kwargs: object):
    arena, diags = build_graph(repo.objects)
    agg = ReportAggregator(top_blobs=2, top_commits=2)
    an = ContributionAnalyzer(arena, diagnostics=diags, on_new_object=agg.observe)
    stats = an.run()
    return agg.build_report(
        repo="demo",
        stats=stats,
        paths=an.paths,
        diagnostics=an.diagnostics,
        contributions=an.contributions,
        **kwargs,
    )


def test_build_report_fields() -> None:
    repo = FakeRepo()
    big = repo.blob(b"B" * 500)
    c1 = repo.commit(repo.tree({"big.bin": big, "src": repo.dir(repo.tree({"a.py": repo.blob(b"a")}))}), ts=1)
    c2 = repo.commit(repo.tree({"big.bin": big, "src": repo.dir(repo.tree({"a.py": repo.blob(b"aa")}))}), (c1,), ts=2)
    repo.commit(repo.tree({"big.bin": big, "src": repo.dir(repo.tree({"a.py": repo.blob(b"aaa")}))}), (c2,), ts=3)

    report = _report_for(repo)

    assert report.commit_count == 3
    assert report.blob_count == 4
    assert report.top_blobs[0] == (500, big.hex())
    assert len(report.top_blobs) == 2
    assert report.largest_contributing_id == c1.hex()
    assert report.top_commits[0] == (report.largest_contributing_size, c1.hex())
    assert len(report.top_commits) == 2
    assert report.contributing_total == report.commit_total_size + report.tree_total_size + report.blob_total_size
    assert report.most_trees_path == "(root)"
    assert report.most_trees_count == 3
    assert report.diagnostics_total == 0


def test_build_report_can_ignore_root_path() -> None:
    repo = FakeRepo()
    c1 = repo.commit(repo.tree({"src": repo.dir(repo.tree({"a.py": repo.blob(b"a")}))}), ts=1)
    repo.commit(repo.tree({"src": repo.dir(repo.tree({"a.py": repo.blob(b"b")}))}), (c1,), ts=2)

    report = _report_for(repo, ignore_root_path=True)

    assert report.most_trees_path == "src"
    assert report.most_trees_count == 2


def test_report_to_dict_is_json_ready() -> None:
    repo = FakeRepo()
    repo.commit(repo.tree({"a": repo.blob(b"x" * 10)}))

    data = _report_for(repo).to_dict()

    assert data["top_blobs"] == [{"size": 10, "id": repo.objects[0].id.hex()}]
    assert data["diagnostics"] == {"object_parse_error": 0, "dangling_reference": 0, "cycle_detected": 0}
    assert isinstance(data["top_commits"], list)
