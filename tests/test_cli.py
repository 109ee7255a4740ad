"""Tests for the vg CLI."""

import json
import logging

import pytest

from vaultgraph import engine as engine_module
from vaultgraph._logging import PACKAGE_LOGGER
from vaultgraph.cli import cli


@pytest.fixture(autouse=True)
def isolated_cli(vault, monkeypatch):
    """Keep the embedding model out of CLI tests and give each run fresh log handlers."""
    monkeypatch.setattr(engine_module, "semantic_deps_available", lambda: False)
    monkeypatch.setenv("VAULTGRAPH_LOG_LEVEL", "WARNING")
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def error_json(result) -> dict:
    """The JSON error object written to stderr."""
    line = next(line for line in result.stderr.splitlines() if line.startswith("{"))
    return json.loads(line)["error"]


class TestIndexAndGraph:
    def test_reindex(self, runner, chain_vault):
        result = runner.invoke(cli, ["reindex"])
        assert result.exit_code == 0, result.output
        assert "Indexed 4 notes (semantic: off)" in result.stdout

    def test_path(self, runner, chain_vault):
        result = runner.invoke(cli, ["path", "A", "C"])
        assert result.exit_code == 0
        assert "A.md -> B.md -> C.md" in result.stdout
        assert "2 hops" in result.stdout

    def test_path_json(self, runner, chain_vault):
        result = runner.invoke(cli, ["path", "C", "A", "--json"])
        data = json.loads(result.stdout)
        assert data["exists"] is False
        assert data["length"] == -1

    def test_weighted_path_reports_cost(self, runner, chain_vault):
        result = runner.invoke(cli, ["path", "A", "C", "--weighted"])
        assert "2 hops, cost" in result.stdout

    def test_common(self, runner, chain_vault):
        result = runner.invoke(cli, ["common", "Index", "A", "--json"])
        assert [item["path"] for item in json.loads(result.stdout)] == ["B.md"]

    def test_bidirectional_unknown_note(self, runner, chain_vault):
        result = runner.invoke(cli, ["bidirectional", "--note", "Ghost"])
        assert result.exit_code == 1
        assert "Note not found: Ghost" in result.stderr

    def test_strength(self, runner, write_note):
        write_note("A.md", "[[B]]")
        write_note("B.md", "[[A]]")
        result = runner.invoke(cli, ["strength", "A", "B"])
        assert "Connection strength: 3" in result.stdout
        assert "mutual link:     yes" in result.stdout

    def test_links(self, runner, chain_vault):
        result = runner.invoke(cli, ["links", "B", "--json"])
        data = json.loads(result.stdout)
        assert sorted(ref["path"] for ref in data["backlinks"]) == ["A.md", "Index.md"]
        assert [ref["path"] for ref in data["forward_links"]] == ["C.md"]

    def test_links_typo_hint(self, runner, write_note):
        write_note("Kubernetes.md", "")
        result = runner.invoke(cli, ["links", "Kubernets"])
        assert result.exit_code == 1
        assert "Did you mean 'Kubernetes'?" in result.stderr

    def test_hubs_and_orphans(self, runner, chain_vault):
        hubs = json.loads(runner.invoke(cli, ["hubs", "--min-links", "3", "--json"]).stdout)
        assert [h["path"] for h in hubs] == ["B.md", "Index.md"]
        assert runner.invoke(cli, ["orphans"]).stdout.split() == ["Index.md"]

    def test_dead_ends_sources_and_stale(self, runner, chain_vault):
        dead_ends = json.loads(runner.invoke(cli, ["dead-ends", "--json"]).stdout)
        assert [(d["path"], d["backlink_count"]) for d in dead_ends] == [("C.md", 2)]

        result = runner.invoke(cli, ["sources"])
        assert "Index.md" in result.stdout
        assert "OUTLINK_COUNT" in result.stdout

        result = runner.invoke(cli, ["stale", "--days", "30"])
        assert result.exit_code == 0
        assert "No stale notes" in result.stdout

    def test_stale_requires_days(self, runner, chain_vault):
        result = runner.invoke(cli, ["stale"])
        assert result.exit_code != 0

    def test_edges_after_reindex(self, runner, chain_vault):
        runner.invoke(cli, ["reindex"])
        result = runner.invoke(cli, ["edges", "--note", "A", "--json"])
        pairs = {(e["source"], e["target"]) for e in json.loads(result.stdout)}
        assert pairs == {("A.md", "B.md"), ("Index.md", "A.md")}


class TestRetrieval:
    def test_search(self, runner, chain_vault):
        runner.invoke(cli, ["reindex"])
        result = runner.invoke(cli, ["search", "start", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["results"][0]["path"] == "A.md"
        assert data["skipped_channels"] == ["semantic"]

    def test_clean_reindex_drops_removed_notes(self, runner, chain_vault, vault):
        runner.invoke(cli, ["reindex"])
        (vault / "A.md").unlink()
        result = runner.invoke(cli, ["reindex", "--clean"])
        assert "Indexed 3 notes" in result.stdout

        data = json.loads(runner.invoke(cli, ["search", "start", "--json"]).stdout)
        assert all(r["path"] != "A.md" for r in data["results"])

    def test_search_invalid_limit_json_error(self, runner, chain_vault):
        result = runner.invoke(cli, ["search", "start", "--limit", "0", "--json-errors"])
        assert result.exit_code == 1
        assert error_json(result)["code"] == "INVALID_ARGUMENT"

    def test_remember_and_recall(self, runner, chain_vault):
        result = runner.invoke(cli, ["remember", "deploy-day", "Deploys happen on Thursday", "--entity", "Ops"])
        assert "Remembered deploy-day" in result.stdout

        result = runner.invoke(cli, ["recall", "deploys", "--focus", "memories", "--json"])
        data = json.loads(result.stdout)
        assert [r["id"] for r in data["results"]] == ["deploy-day"]
        assert data["results"][0]["breakdown"]["feedback_boost"] == 5.0

    def test_recall_text_output(self, runner, chain_vault):
        runner.invoke(cli, ["reindex"])
        result = runner.invoke(cli, ["recall", "start"])
        assert result.exit_code == 0, result.output
        assert "[note] A" in result.stdout


class TestCuration:
    def test_suggest_text(self, runner, write_note):
        write_note("Acme Corp.md", "")
        result = runner.invoke(cli, ["suggest", "--text", "See [[Acme Corp]] and also Acme Corp again.", "--json"])
        data = json.loads(result.stdout)
        assert len(data["suggestions"]) == 1
        assert data["suggestions"][0]["start"] == 27

    def test_suggest_stdin_and_file(self, runner, vault, write_note):
        write_note("Acme Corp.md", "")
        result = runner.invoke(cli, ["suggest"], input="Acme Corp shipped.")
        assert "Acme Corp -> [[Acme Corp]]" in result.stdout

        draft = write_note("Draft.md", "Met Acme Corp today.")
        result = runner.invoke(cli, ["suggest", str(draft)])
        assert "[[Acme Corp]]" in result.stdout

    def test_suggest_detailed_with_note(self, runner, write_note):
        write_note("people/Jane Smith.md", "")
        write_note("projects/Roadmap.md", "")
        result = runner.invoke(
            cli,
            ["suggest", "--text", "Met Jane Smith about the roadmap.", "--detailed", "--note", "Roadmap", "--json"],
        )
        assert result.exit_code == 0, result.output
        [suggestion] = [s for s in json.loads(result.stdout)["suggestions"] if s["entity"] == "Jane Smith"]
        assert suggestion["score"]["type_boost"] == 5
        assert suggestion["score"]["cross_folder_boost"] == 3

    def test_suggest_unknown_note(self, runner, write_note):
        write_note("Acme Corp.md", "")
        result = runner.invoke(cli, ["suggest", "--text", "Acme Corp", "--note", "Ghost"])
        assert result.exit_code == 1
        assert "Note not found: Ghost" in result.stderr

    def test_suggest_non_utf8_file(self, runner, vault):
        draft = vault / "draft.txt"
        draft.write_bytes("Café notes".encode("latin-1"))
        result = runner.invoke(cli, ["--json-errors", "suggest", str(draft)])
        assert result.exit_code == 1
        assert error_json(result)["code"] == "PARSE_ERROR"

    def test_suggest_bad_filter(self, runner, write_note):
        write_note("Acme Corp.md", "")
        result = runner.invoke(cli, ["--json-errors", "suggest", "--text", "x", "--filter", "(oops"])
        assert result.exit_code == 1
        assert error_json(result)["code"] == "INVALID_PATTERN"

    def test_merges_and_dismiss(self, runner, write_note):
        write_note("React.md", "")
        write_note("ReactJS.md", "")

        result = runner.invoke(cli, ["merges", "--json"])
        data = json.loads(result.stdout)
        assert data["total_candidates"] == 1
        assert data["suggestions"][0]["match_type"] == "normalized"

        result = runner.invoke(cli, ["dismiss-merge", "React", "ReactJS"])
        assert "Dismissed React.md::ReactJS.md" in result.stdout

        runner.invoke(cli, ["reindex"])
        assert "No merge candidates." in runner.invoke(cli, ["merges"]).stdout

    def test_dismiss_same_note(self, runner, write_note):
        write_note("React.md", "")
        result = runner.invoke(cli, ["dismiss-merge", "React", "React.md"])
        assert result.exit_code == 1
        assert "against itself" in result.stderr

    def test_stubs(self, runner, write_note):
        write_note("N1.md", "[[Bob Smith]] and [[Bob Smith]]")
        write_note("N2.md", "[[Bob Smith]]")
        write_note("N3.md", "[[Bob Smith]]")
        [stub] = json.loads(runner.invoke(cli, ["stubs", "--json"]).stdout)
        assert stub["wikilink_references"] == 4
        assert stub["source_notes"] == 3

    def test_validate(self, runner, write_note):
        write_note("A.md", "[[Kubernets]]")
        write_note("Kubernetes.md", "")
        result = runner.invoke(cli, ["validate"])
        assert "A.md:1  [[Kubernets]]  (did you mean [[Kubernetes]]?)" in result.stdout


class TestErrors:
    def test_command_typo_suggestion(self, runner):
        result = runner.invoke(cli, ["serach", "query"])
        assert result.exit_code != 0
        assert "Did you mean 'search'?" in result.output

    def test_json_errors_flag_anywhere(self, runner):
        result = runner.invoke(cli, ["path", "A", "--bogus", "--json-errors"])
        assert result.exit_code == 1
        assert error_json(result)["code"] == "UNKNOWN_OPTION"

    def test_no_vault_found(self, runner, tmp_path, monkeypatch):
        monkeypatch.delenv("VAULTGRAPH_VAULT_ROOT")
        monkeypatch.delenv("VAULTGRAPH_INDEX_ROOT")
        empty = tmp_path / "not-a-vault"
        empty.mkdir()
        monkeypatch.chdir(empty)
        result = runner.invoke(cli, ["hubs"])
        assert result.exit_code == 1
        assert "No vault found" in result.stderr
