"""
vg: CLI for the vaultgraph retrieval engine

Usage:
    vg reindex                      # Rebuild snapshot and search indices
    vg search "query"               # Fused multi-channel search
    vg recall "query"               # Entities, notes and memories with score breakdowns
    vg path "Note A" "Note B"       # Shortest link path
    vg suggest notes/draft.md       # Where could wikilinks go?
    vg merges                       # Likely duplicate entities
"""

from __future__ import annotations

import asyncio
import difflib
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

import click
from click.exceptions import ClickException, UsageError
from pydantic import BaseModel

from . import __version__ as VAULTGRAPH_VERSION
from .config import (
    DEFAULT_HUB_MIN_LINKS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_RECALL_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    EDGE_SURFACE_THRESHOLD,
    STUB_DEFAULT_LIMIT,
    STUB_MIN_FREQUENCY,
    ConfigurationError,
)
from .errors import ErrorCode, VaultGraphError, format_error_json

if TYPE_CHECKING:
    from .engine import VaultEngine


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


# ─────────────────────────────────────────────────────────────────────────────
# Output Formatting
# ─────────────────────────────────────────────────────────────────────────────


def format_table(rows: list[dict], columns: list[str], max_widths: dict | None = None) -> str:
    """Format rows as a simple table."""
    if not rows:
        return ""

    max_widths = max_widths or {}
    widths = {col: len(col) for col in columns}

    def cell(row: dict, col: str) -> str:
        val = str(row.get(col, ""))
        limit = max_widths.get(col, 50)
        if len(val) > limit:
            val = val[: limit - 3] + "..."
        return val

    for row in rows:
        for col in columns:
            widths[col] = max(widths[col], len(cell(row, col)))

    header = "  ".join(col.upper().ljust(widths[col]) for col in columns)
    separator = "  ".join("-" * widths[col] for col in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(cell(row, col).ljust(widths[col]) for col in columns))
    return "\n".join(lines)


def _dump(data: BaseModel | Sequence[BaseModel]) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    return [item.model_dump(mode="json") for item in data]


def output_json(data: BaseModel | Sequence[BaseModel]) -> None:
    click.echo(json.dumps(_dump(data), indent=2, default=str))


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Report an error as text, or as JSON when --json-errors is set."""
    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, VaultGraphError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
            suggestion = error.details.get("suggestion") if error.details else None
            if suggestion:
                click.echo(f"Hint: {suggestion}", err=True)
    else:
        message = str(error)
        if json_errors:
            click.echo(format_error_json(ErrorCode.INVALID_ARGUMENT, message), err=True)
        else:
            click.echo(f"Error: {message}", err=True)

    sys.exit(exit_code)


def get_error_code_for_exception(exc: Exception) -> str:
    """Map Click exceptions to error codes."""
    if isinstance(exc, click.BadParameter):
        return "INVALID_ARGUMENT"
    elif isinstance(exc, click.MissingParameter):
        return "MISSING_ARGUMENT"
    elif isinstance(exc, click.NoSuchOption):
        return "UNKNOWN_OPTION"
    elif isinstance(exc, UsageError):
        return "USAGE_ERROR"
    return "CLI_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# JSON Error Handling
# ─────────────────────────────────────────────────────────────────────────────


class JsonErrorGroup(click.Group):
    """Click group that formats usage errors as JSON when --json-errors is set.

    Also suggests the closest command name for typos.
    """

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            cmd_name = args[0] if args else ""
            if cmd_name and "No such command" in str(e):
                matches = difflib.get_close_matches(cmd_name, self.list_commands(ctx), n=1, cutoff=0.6)
                if matches:
                    raise UsageError(f"No such command '{cmd_name}'. Did you mean '{matches[0]}'?")
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Catch errors raised while parsing arguments, before any command runs.

        --json-errors may appear anywhere on the command line; it is moved to
        the front so Click parses it as the global flag.
        """
        argv = list(args) if args is not None else list(sys.argv[1:])
        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        argv = ["--json-errors", *(a for a in argv if a != "--json-errors")]
        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            click.echo(format_error_json(get_error_code_for_exception(e), e.format_message()), err=True)
            raise SystemExit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=VAULTGRAPH_VERSION, prog_name="vg")
@click.option(
    "--vault",
    "vault",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    envvar="VAULTGRAPH_VAULT_ROOT",
    help="Vault root (default: discovered from the current directory)",
)
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="VAULTGRAPH_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.pass_context
def cli(ctx: click.Context, vault: Path | None, json_errors: bool, quiet: bool):
    """vg: query and grow the link graph of a note vault.

    \b
    Retrieval:
      vg reindex                         # Build lexical (and semantic) indices
      vg search "deployment" --context "Ops"
      vg recall "what do we know about Acme" --max-tokens 2000

    \b
    Graph:
      vg path "Note A" "Note B" --weighted
      vg common "Note A" "Note B"
      vg strength "Note A" "Note B"

    \b
    Curation:
      vg suggest draft.md                # Unlinked mentions and prospects
      vg merges                          # Duplicate entity candidates
      vg stubs                           # Dead links worth a note
    """
    from ._logging import configure_logging, set_quiet_mode

    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["vault"] = vault
    ctx.obj["json_errors"] = json_errors
    if quiet:
        set_quiet_mode(True)


def _engine(ctx: click.Context, load: bool = True) -> VaultEngine:
    """Engine for the selected vault, with a freshly built snapshot when load is set."""
    from .engine import VaultEngine

    try:
        engine = VaultEngine.from_config(ctx.obj.get("vault"))
        if load:
            engine.load()
    except (ConfigurationError, VaultGraphError) as e:
        _handle_error(ctx, e)
    return engine


def _require_note(ctx: click.Context, engine: VaultEngine, ref: str) -> str:
    index = engine.snapshot()
    path = index.resolve_note(ref)
    if path is None:
        similar = index.find_similar_entity(ref)
        _handle_error(ctx, VaultGraphError.note_not_found(ref, similar.entity if similar else None))
    return path


# ─────────────────────────────────────────────────────────────────────────────
# Index
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.option("--clean", is_flag=True, help="Drop the full-text index before rebuilding")
@click.pass_context
def reindex(ctx: click.Context, clean: bool):
    """Rebuild the vault snapshot and the search indices."""
    engine = _engine(ctx, load=False)
    try:
        index = engine.rebuild(clean=clean)
    except VaultGraphError as e:
        _handle_error(ctx, e)
    semantic = "on" if engine.semantic is not None else "off"
    click.echo(f"Indexed {len(index)} notes (semantic: {semantic})")


# ─────────────────────────────────────────────────────────────────────────────
# Graph
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("source")
@click.argument("target")
@click.option("--max-depth", default=DEFAULT_MAX_DEPTH, show_default=True, help="Maximum hops")
@click.option("--weighted", is_flag=True, help="Penalize routes through hub notes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def path(ctx: click.Context, source: str, target: str, max_depth: int, weighted: bool, as_json: bool):
    """Find the shortest link path between two notes."""
    from .graph import shortest_path, weighted_shortest_path

    index = _engine(ctx).snapshot()
    finder = weighted_shortest_path if weighted else shortest_path
    result = finder(index, source, target, max_depth=max_depth)

    if as_json:
        output_json(result)
        return
    if not result.exists:
        click.echo(f"No path from {source} to {target} within {max_depth} hops")
        return
    click.echo(" -> ".join(result.path))
    suffix = f", cost {result.cost:.3f}" if result.cost is not None else ""
    click.echo(f"{result.length} hops{suffix}")


@cli.command()
@click.argument("note_a")
@click.argument("note_b")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def common(ctx: click.Context, note_a: str, note_b: str, as_json: bool):
    """List notes both NOTE_A and NOTE_B link to."""
    from .graph import common_neighbors

    index = _engine(ctx).snapshot()
    shared = common_neighbors(index, note_a, note_b)
    if as_json:
        output_json(shared)
        return
    if not shared:
        click.echo("No common neighbors")
        return
    rows = [
        {"path": s.path, "title": s.title, "line_a": s.linked_from_a_line, "line_b": s.linked_from_b_line}
        for s in shared
    ]
    click.echo(format_table(rows, ["path", "title", "line_a", "line_b"]))


@cli.command()
@click.option("--note", help="Only pairs involving this note")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def bidirectional(ctx: click.Context, note: str | None, as_json: bool):
    """List pairs of notes that link to each other."""
    from .graph import bidirectional_links

    engine = _engine(ctx)
    if note is not None:
        note = _require_note(ctx, engine, note)
    pairs = bidirectional_links(engine.snapshot(), note)
    if as_json:
        output_json(pairs)
        return
    if not pairs:
        click.echo("No bidirectional links")
        return
    for pair in pairs:
        click.echo(f"{pair.note_a} <-> {pair.note_b}")


@cli.command()
@click.argument("note_a")
@click.argument("note_b")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def strength(ctx: click.Context, note_a: str, note_b: str, as_json: bool):
    """Score how strongly two notes are connected."""
    from .graph import connection_strength

    result = connection_strength(_engine(ctx).snapshot(), note_a, note_b)
    if as_json:
        output_json(result)
        return
    factors = result.factors
    click.echo(f"Connection strength: {result.score:g}")
    click.echo(f"  mutual link:     {'yes' if factors.mutual_link else 'no'}")
    click.echo(f"  one-way link:    {'yes' if factors.one_way_link else 'no'}")
    click.echo(f"  shared tags:     {', '.join(factors.shared_tags) or '-'}")
    click.echo(f"  shared outlinks: {factors.shared_outlinks}")
    click.echo(f"  same folder:     {'yes' if factors.same_folder else 'no'}")


@cli.command()
@click.argument("note")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def links(ctx: click.Context, note: str, as_json: bool):
    """Show backlinks and forward links of a note."""
    from .graph import backlinks_for_note, forward_links_for_note

    engine = _engine(ctx)
    path = _require_note(ctx, engine, note)
    index = engine.snapshot()
    backlinks = backlinks_for_note(index, path)
    forward = forward_links_for_note(index, path)
    if as_json:
        click.echo(json.dumps({"backlinks": _dump(backlinks), "forward_links": _dump(forward)}, indent=2))
        return
    click.echo(f"Backlinks ({len(backlinks)}):")
    for ref in backlinks:
        click.echo(f"  {ref.path}:{ref.line}")
    click.echo(f"Forward links ({len(forward)}):")
    for ref in forward:
        marker = "" if ref.exists else "  (missing)"
        click.echo(f"  {ref.path} (line {ref.line}){marker}")


@cli.command()
@click.option("--min-links", default=DEFAULT_HUB_MIN_LINKS, show_default=True, help="Backlinks plus outlinks")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def hubs(ctx: click.Context, min_links: int, as_json: bool):
    """List the most connected notes."""
    from .graph import find_hub_notes

    result = find_hub_notes(_engine(ctx).snapshot(), min_links=min_links)
    if as_json:
        output_json(result)
        return
    rows = [h.model_dump() for h in result]
    click.echo(format_table(rows, ["path", "backlink_count", "forward_link_count"]) or "No hub notes")


@cli.command()
@click.option("--folder", help="Only notes under this folder")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def orphans(ctx: click.Context, folder: str | None, as_json: bool):
    """List notes nothing links to."""
    from .graph import find_orphan_notes

    result = find_orphan_notes(_engine(ctx).snapshot(), folder=folder)
    if as_json:
        output_json(result)
        return
    for note in result:
        click.echo(note.path)


@cli.command("dead-ends")
@click.option("--folder", help="Only notes under this folder")
@click.option("--min-backlinks", default=1, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def dead_ends(ctx: click.Context, folder: str | None, min_backlinks: int, as_json: bool):
    """List linked-to notes that link nowhere."""
    from .graph import find_dead_ends

    result = find_dead_ends(_engine(ctx).snapshot(), folder=folder, min_backlinks=min_backlinks)
    if as_json:
        output_json(result)
        return
    rows = [d.model_dump() for d in result]
    click.echo(format_table(rows, ["path", "backlink_count"]) or "No dead ends")


@cli.command()
@click.option("--folder", help="Only notes under this folder")
@click.option("--min-outlinks", default=1, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def sources(ctx: click.Context, folder: str | None, min_outlinks: int, as_json: bool):
    """List notes that link out but nothing links to."""
    from .graph import find_sources

    result = find_sources(_engine(ctx).snapshot(), folder=folder, min_outlinks=min_outlinks)
    if as_json:
        output_json(result)
        return
    rows = [s.model_dump() for s in result]
    click.echo(format_table(rows, ["path", "outlink_count"]) or "No source notes")


@cli.command()
@click.option("--days", required=True, type=click.IntRange(min=0), help="Not modified in this many days")
@click.option("--min-backlinks", default=0, show_default=True)
@click.option("--limit", "-n", default=50, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stale(ctx: click.Context, days: int, min_backlinks: int, limit: int, as_json: bool):
    """List notes nobody has edited in a while, most linked first."""
    from .graph import find_stale_notes

    result = find_stale_notes(_engine(ctx).snapshot(), days=days, min_backlinks=min_backlinks)[:limit]
    if as_json:
        output_json(result)
        return
    rows = [s.model_dump(include={"path", "backlink_count", "days_since_modified"}) for s in result]
    click.echo(format_table(rows, ["path", "backlink_count", "days_since_modified"]) or "No stale notes")


@cli.command()
@click.option("--note", help="Only edges touching this note")
@click.option("--threshold", default=EDGE_SURFACE_THRESHOLD, show_default=True, help="Minimum decayed weight")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def edges(ctx: click.Context, note: str | None, threshold: float, as_json: bool):
    """Show stored edge weights after time decay."""
    from .edge_weights import surface_edges

    engine = _engine(ctx)
    try:
        rows = engine.store.edge_weights()
    except VaultGraphError as e:
        _handle_error(ctx, e)
    surfaced = surface_edges(rows, threshold=threshold)
    if note is not None:
        path = _require_note(ctx, engine, note)
        surfaced = [e for e in surfaced if path in (e.source, e.target)]
    if as_json:
        output_json(surfaced)
        return
    rows_out = [
        {"source": e.source, "target": e.target, "stored": f"{e.stored_weight:.2f}", "effective": f"{e.effective_weight:.2f}"}
        for e in surfaced
    ]
    click.echo(format_table(rows_out, ["source", "target", "stored", "effective"]) or "No edges above threshold")


# ─────────────────────────────────────────────────────────────────────────────
# Retrieval
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", default=DEFAULT_SEARCH_LIMIT, show_default=True, help="Max results")
@click.option("--context", "context_note", help="Bias results toward notes connected to this note")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def search(ctx: click.Context, query: str, limit: int, context_note: str | None, as_json: bool):
    """Search the vault across all channels (fused with RRF)."""
    from .indexer.hybrid import hybrid_search

    engine = _engine(ctx)
    try:
        response = run_async(hybrid_search(engine.context(), query, limit=limit, context_note=context_note))
    except VaultGraphError as e:
        _handle_error(ctx, e)

    if as_json:
        output_json(response)
        return
    for warning in response.warnings:
        click.echo(f"Warning: {warning}", err=True)
    if not response.results:
        click.echo("No results found.")
        return
    rows = [
        {"path": r.path, "title": r.title, "score": f"{r.score:.4f}", "channels": ",".join(r.channels)}
        for r in response.results
    ]
    click.echo(format_table(rows, ["path", "title", "score", "channels"], {"path": 50, "title": 40}))


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", default=DEFAULT_RECALL_LIMIT, show_default=True, help="Max results")
@click.option(
    "--focus",
    type=click.Choice(["entities", "notes", "memories", "all"]),
    default="all",
    show_default=True,
)
@click.option("--entity", help="Only memories attached to this entity")
@click.option("--max-tokens", type=int, help="Token budget for returned content")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def recall(
    ctx: click.Context,
    query: str,
    limit: int,
    focus: str,
    entity: str | None,
    max_tokens: int | None,
    as_json: bool,
):
    """Recall entities, notes and memories with score breakdowns."""
    from .recall import recall as run_recall

    engine = _engine(ctx)
    try:
        response = run_async(
            run_recall(
                engine.context(),
                query,
                max_results=limit,
                focus=focus,  # type: ignore[arg-type]
                entity=entity,
                max_tokens=max_tokens,
            )
        )
    except VaultGraphError as e:
        _handle_error(ctx, e)

    if as_json:
        output_json(response)
        return
    if not response.results:
        click.echo("Nothing recalled.")
        return
    for result in response.results:
        b = result.breakdown
        click.echo(f"[{result.type}] {result.title}  ({result.score:.1f})")
        click.echo(
            f"    text {b.text_relevance:g}  recency {b.recency_boost:g}  cooccurrence {b.cooccurrence_boost:g}"
            f"  feedback {b.feedback_boost:g}  edges {b.edge_weight_boost:g}  semantic {b.semantic_boost:.1f}"
        )
    if response.truncated:
        click.echo(f"({response.total_candidates} candidates, truncated)")


@cli.command()
@click.argument("key")
@click.argument("value")
@click.option("--entity", help="Entity this fact is about")
@click.option("--confidence", type=click.FloatRange(0.0, 1.0), default=1.0, show_default=True)
@click.pass_context
def remember(ctx: click.Context, key: str, value: str, entity: str | None, confidence: float):
    """Store a fact for later recall."""
    engine = _engine(ctx, load=False)
    try:
        engine.store.remember(key, value, entity=entity, confidence=confidence)
    except VaultGraphError as e:
        _handle_error(ctx, e)
    click.echo(f"Remembered {key}")


# ─────────────────────────────────────────────────────────────────────────────
# Curation
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("file", required=False, type=click.File("r", encoding="utf-8"))
@click.option("--text", help="Text to scan instead of FILE (or stdin)")
@click.option("--detailed", is_flag=True, help="Score each suggestion and drop weak ones")
@click.option(
    "--strictness",
    type=click.Choice(["conservative", "balanced", "aggressive"]),
    default="balanced",
    show_default=True,
)
@click.option("--filter", "entity_filter", help="Regex limiting which entities are suggested")
@click.option("--note", "note_ref", help="Note the text belongs to (defaults to FILE when it is in the vault)")
@click.option("--no-prospects", is_flag=True, help="Skip prospect detection")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def suggest(
    ctx: click.Context,
    file,
    text: str | None,
    detailed: bool,
    strictness: str,
    entity_filter: str | None,
    note_ref: str | None,
    no_prospects: bool,
    as_json: bool,
):
    """Suggest wikilinks for FILE, --text, or stdin.

    With --detailed, each suggestion is scored on word matches plus entity
    type, folder, hub, recency, feedback, co-occurrence, edge-weight and
    semantic signals.
    """
    from .suggest import suggest_wikilinks

    if text is None:
        try:
            text = file.read() if file is not None else click.get_text_stream("stdin").read()
        except UnicodeDecodeError:
            name = file.name if file is not None else "<stdin>"
            _handle_error(ctx, VaultGraphError.parse_error(name, "not valid UTF-8 text"))

    engine = _engine(ctx)
    note_path = _require_note(ctx, engine, note_ref) if note_ref is not None else None
    if note_path is None and file is not None and file.name != "<stdin>":
        file_path = Path(file.name).resolve()
        if file_path.is_relative_to(engine.vault_root.resolve()):
            note_path = file_path.relative_to(engine.vault_root.resolve()).as_posix()

    query_ctx = engine.context()
    try:
        result = suggest_wikilinks(
            text,
            query_ctx.index,
            detailed=detailed,
            strictness=strictness,  # type: ignore[arg-type]
            entity_filter=entity_filter,
            include_prospects=not no_prospects,
            store=query_ctx.store,
            semantic=query_ctx.semantic,
            note_path=note_path,
        )
    except VaultGraphError as e:
        _handle_error(ctx, e)

    if as_json:
        output_json(result)
        return
    if not result.suggestions and not result.prospects:
        click.echo("No suggestions.")
        return
    for s in result.suggestions:
        score = f"  (score {s.score.total:g})" if s.score is not None else ""
        click.echo(f"{s.start}-{s.end}  {s.matched_text} -> [[{s.entity}]]{score}")
    for p in result.prospects:
        click.echo(f"{p.start}-{p.end}  {p.matched_text}  prospect ({p.source.value}, {p.confidence.value})")


@cli.command()
@click.option("--limit", "-n", default=50, show_default=True, help="Max suggestions")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def merges(ctx: click.Context, limit: int, as_json: bool):
    """Suggest entities that look like duplicates."""
    from .dedup import suggest_entity_merges

    engine = _engine(ctx)
    try:
        dismissed = engine.store.dismissed_pairs()
    except VaultGraphError as e:
        _handle_error(ctx, e)
    result = suggest_entity_merges(engine.snapshot().entity_records, dismissed, limit=limit)

    if as_json:
        output_json(result)
        return
    if not result.suggestions:
        click.echo("No merge candidates.")
        return
    for c in result.suggestions:
        click.echo(f"{c.source_name} -> {c.target_name}  {c.confidence:.2f}  {c.reason}")
        click.echo(f"    {c.source_path} -> {c.target_path}")
    click.echo(f"({len(result.suggestions)} of {result.total_candidates} shown)")


@cli.command("dismiss-merge")
@click.argument("note_a")
@click.argument("note_b")
@click.option("--reason", help="Why these are not duplicates")
@click.pass_context
def dismiss_merge_cmd(ctx: click.Context, note_a: str, note_b: str, reason: str | None):
    """Permanently stop suggesting NOTE_A and NOTE_B as duplicates."""
    from .dedup import dismiss_merge, suggest_entity_merges

    engine = _engine(ctx)
    path_a = _require_note(ctx, engine, note_a)
    path_b = _require_note(ctx, engine, note_b)
    if path_a == path_b:
        _handle_error(ctx, VaultGraphError.invalid_argument("Cannot dismiss a note against itself", path=path_a))

    pair = {path_a, path_b}
    candidates = suggest_entity_merges(engine.snapshot().entity_records, limit=sys.maxsize).suggestions
    match = next((c for c in candidates if {c.source_path, c.target_path} == pair), None)
    try:
        if match is not None and reason is None:
            key = dismiss_merge(engine.store, match)
        else:
            key = engine.store.record_dismissal(path_a, path_b, reason=reason)
    except VaultGraphError as e:
        _handle_error(ctx, e)
    click.echo(f"Dismissed {key}")


@cli.command()
@click.option("--min-frequency", default=STUB_MIN_FREQUENCY, show_default=True, help="Minimum dead link references")
@click.option("--limit", "-n", default=STUB_DEFAULT_LIMIT, show_default=True, help="Max candidates")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stubs(ctx: click.Context, min_frequency: int, limit: int, as_json: bool):
    """List dead link targets that deserve their own note."""
    from .suggest import discover_stub_candidates

    result = discover_stub_candidates(_engine(ctx).snapshot(), min_frequency=min_frequency, limit=limit)
    if as_json:
        output_json(result)
        return
    rows = [
        {"name": c.name, "references": c.wikilink_references, "notes": c.source_notes, "samples": ", ".join(c.sample_notes)}
        for c in result
    ]
    click.echo(format_table(rows, ["name", "references", "notes", "samples"]) or "No stub candidates.")


@cli.command()
@click.option("--note", help="Only check links in this note")
@click.option("--typos-only", is_flag=True, help="Only broken links with a likely intended target")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def validate(ctx: click.Context, note: str | None, typos_only: bool, as_json: bool):
    """Report wikilinks that point nowhere."""
    from .suggest import validate_links

    engine = _engine(ctx)
    if note is not None:
        note = _require_note(ctx, engine, note)
    broken = validate_links(engine.snapshot(), path=note, typos_only=typos_only)
    if as_json:
        output_json(broken)
        return
    if not broken:
        click.echo("All links resolve.")
        return
    for b in broken:
        hint = f"  (did you mean [[{b.suggestion}]]?)" if b.suggestion else ""
        click.echo(f"{b.source}:{b.line}  [[{b.target}]]{hint}")


def main():
    cli()


if __name__ == "__main__":
    main()
