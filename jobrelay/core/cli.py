from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from jobrelay.core.models import RunStatus
from jobrelay.core.orchestrator import PipelineOrchestrator
from jobrelay.dedupe.service import DedupeService
from jobrelay.sources.profiles import REGISTRY_ORDER, build_plugins
from jobrelay.storage.kv_store import KeyValueStore
from jobrelay.storage.repository import JobRepository
from jobrelay.summarize.prompts import SETTING_KEY_PREFIX, TEMPLATES, PromptConfig, merge_prompt_config
from jobrelay.utils.config import ConfigError, load_config
from jobrelay.utils.logging_utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobrelay", description="Job posting relay pipeline")
    parser.add_argument("--config", default="config.yaml")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Fetch, summarize and publish new postings")
    run.add_argument("--trigger", default="manual", choices=["manual", "scheduled"])

    runs = commands.add_parser("runs", help="Show recent runs")
    runs.add_argument("--limit", type=int, default=20)

    jobs = commands.add_parser("jobs", help="Show recorded jobs")
    jobs.add_argument("--status", choices=["fetched", "posted", "skipped", "failed"])
    jobs.add_argument("--source", choices=list(REGISTRY_ORDER))
    jobs.add_argument("--limit", type=int, default=50)

    kv = commands.add_parser("kv", help="Inspect the dedup store")
    kv_commands = kv.add_subparsers(dest="kv_command", required=True)
    kv_list = kv_commands.add_parser("list", help="Recently posted identities")
    kv_list.add_argument("--prefix", default="", help="Only identities starting with this text")
    kv_list.add_argument("--limit", type=int, default=10)
    kv_show = kv_commands.add_parser("show")
    kv_show.add_argument("identity")
    kv_delete = kv_commands.add_parser("delete-job")
    kv_delete.add_argument("identity")
    kv_dedup = kv_commands.add_parser("delete-dedup")
    kv_dedup.add_argument("title")
    kv_dedup.add_argument("company")
    kv_search = kv_commands.add_parser("search", help="Posted identities whose title or company contains KEYWORD")
    kv_search.add_argument("keyword")
    kv_search.add_argument("--limit", type=int, default=20)
    kv_commands.add_parser("clear")

    prompt = commands.add_parser("prompt", help="Inspect or override summary prompt settings")
    prompt_commands = prompt.add_subparsers(dest="prompt_command", required=True)
    prompt_commands.add_parser("list")
    prompt_show = prompt_commands.add_parser("show")
    prompt_show.add_argument("source_id", choices=list(REGISTRY_ORDER))
    for action in ("set-hint", "set-apply"):
        setter = prompt_commands.add_parser(action)
        setter.add_argument("source_id", choices=list(REGISTRY_ORDER))
        setter.add_argument("text", nargs="+")
    prompt_flag = prompt_commands.add_parser("set-howtoapply")
    prompt_flag.add_argument("source_id", choices=list(REGISTRY_ORDER))
    prompt_flag.add_argument("value", choices=["on", "off"])
    prompt_reset = prompt_commands.add_parser("reset", help="Drop overrides for one source, or all sources")
    prompt_reset.add_argument("source_id", nargs="?")
    template_show = prompt_commands.add_parser("show-template")
    template_show.add_argument("family", choices=sorted(TEMPLATES))
    template_set = prompt_commands.add_parser("set-template")
    template_set.add_argument("family", choices=sorted(TEMPLATES))
    template_text = template_set.add_mutually_exclusive_group(required=True)
    template_text.add_argument("--text")
    template_text.add_argument("--file")
    template_reset = prompt_commands.add_parser("reset-template")
    template_reset.add_argument("family", choices=sorted(TEMPLATES))

    sources = commands.add_parser("sources", help="List or toggle sources")
    sources_commands = sources.add_subparsers(dest="sources_command")
    for action in ("enable", "disable"):
        toggle = sources_commands.add_parser(action)
        toggle.add_argument("source_id")
    return parser


def _print_rows(rows: list[Any], columns: tuple[str, ...]) -> None:
    for row in rows:
        print("  ".join(f"{column}={row[column]}" for column in columns))


def _run(config: dict[str, Any], args: argparse.Namespace) -> int:
    stats = PipelineOrchestrator(config).run(args.trigger)
    print("Run complete:", json.dumps({"run_id": stats.run_id, "status": stats.status.value, **stats.as_counts()}))
    return 0 if stats.status is RunStatus.COMPLETED else 1


def _kv(config: dict[str, Any], args: argparse.Namespace) -> int:
    dedupe = DedupeService(KeyValueStore(config["storage"]["db_path"]))
    if args.kv_command == "list":
        entries = dedupe.list_recent(limit=None)
        entries = [entry for entry in entries if entry[0].startswith(args.prefix)][: args.limit]
        for identity, record in entries:
            print(f"{record.posted_at}  {identity}  {record.title} | {record.company or '-'}")
        if not entries:
            print("No posted jobs recorded.")
        return 0
    if args.kv_command == "show":
        record = dedupe.get_record(args.identity)
        if record is None:
            print(f"Not found: {args.identity}")
            return 1
        print(json.dumps({"posted_at": record.posted_at, "title": record.title, "company": record.company}, ensure_ascii=False))
        return 0
    if args.kv_command == "delete-job":
        deleted = dedupe.delete_identity(args.identity)
        print("Deleted." if deleted else f"Not found: {args.identity}")
        return 0 if deleted else 1
    if args.kv_command == "delete-dedup":
        deleted = dedupe.delete_fingerprint(args.title, args.company)
        print("Deleted." if deleted else "Not found.")
        return 0 if deleted else 1
    if args.kv_command == "search":
        entries = dedupe.search(args.keyword, limit=args.limit)
        for identity, record in entries:
            print(f"{record.posted_at}  {identity}  {record.title} | {record.company or '-'}")
        if not entries:
            print(f"No posted jobs match: {args.keyword}")
        return 0
    counts = dedupe.clear()
    print("Cleared:", json.dumps(counts))
    return 0


def _describe_prompt(name: str, config: PromptConfig, overridden: bool) -> str:
    hint = config.source_hint or "(none)"
    if len(hint) > 80:
        hint = hint[:80] + "..."
    return (
        f"{name}{' [override]' if overridden else ''}  "
        f"howtoapply={'on' if config.include_how_to_apply else 'off'}  "
        f"hint={hint}  fallback={config.apply_fallback or '(none)'}"
    )


def _prompt(config: dict[str, Any], repo: JobRepository, args: argparse.Namespace) -> int:
    plugins = {plugin.name: plugin for plugin in build_plugins(config)}
    repo.sync_sources(plugins.values(), config["sources"]["enabled"])
    command = args.prompt_command

    if command == "list":
        overrides = repo.prompt_overrides()
        for name, plugin in plugins.items():
            merged = merge_prompt_config(plugin.prompt, overrides.get(name))
            print(_describe_prompt(name, merged, name in overrides))
        return 0
    if command == "show":
        override = repo.prompt_override(args.source_id)
        merged = merge_prompt_config(plugins[args.source_id].prompt, override)
        print(_describe_prompt(args.source_id, merged, bool(override)))
        if override:
            print("override:", json.dumps(override, ensure_ascii=False))
        return 0
    if command in ("set-hint", "set-apply", "set-howtoapply"):
        if command == "set-howtoapply":
            field, value = "include_how_to_apply", args.value == "on"
        else:
            field = "source_hint" if command == "set-hint" else "apply_fallback"
            value = " ".join(args.text)
        repo.set_prompt_field(args.source_id, field, value)
        print(f"Updated {args.source_id}.{field}.")
        return 0
    if command == "reset":
        if args.source_id is not None and args.source_id not in plugins:
            print(f"Unknown source: {args.source_id}", file=sys.stderr)
            return 1
        cleared = repo.clear_prompt_overrides(args.source_id)
        print(f"Removed {cleared} prompt override(s).")
        return 0

    key = f"{SETTING_KEY_PREFIX}{args.family}"
    if command == "show-template":
        stored = repo.get_setting(key)
        print(f"{args.family} template ({'override' if stored else 'built-in'}):")
        print(stored or TEMPLATES[args.family])
        return 0
    if command == "set-template":
        try:
            template = args.text if args.text is not None else Path(args.file).read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Cannot read template: {exc}", file=sys.stderr)
            return 1
        if "{{description}}" not in template:
            print("Template must contain the {{description}} placeholder.", file=sys.stderr)
            return 1
        repo.set_setting(key, template)
        print(f"Updated {args.family} template.")
        return 0
    print(f"{args.family} template reset." if repo.delete_setting(key) else f"{args.family} template already built-in.")
    return 0


def _sources(config: dict[str, Any], repo: JobRepository, args: argparse.Namespace) -> int:
    repo.sync_sources(build_plugins(config), config["sources"]["enabled"])
    if args.sources_command is None:
        _print_rows(repo.list_sources(), ("id", "type", "enabled", "display_name"))
        return 0
    if not repo.set_source_enabled(args.source_id, args.sources_command == "enable"):
        print(f"Unknown source: {args.source_id}", file=sys.stderr)
        return 1
    print(f"{args.source_id} {args.sources_command}d.")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    setup_logging(config["storage"]["log_dir"])

    if args.command == "run":
        return _run(config, args)
    if args.command == "kv":
        return _kv(config, args)

    repo = JobRepository(config["storage"]["db_path"])
    try:
        if args.command == "runs":
            _print_rows(
                repo.list_runs(args.limit),
                ("id", "started_at", "trigger_type", "status", "jobs_fetched", "jobs_posted", "jobs_skipped", "jobs_failed"),
            )
            return 0
        if args.command == "jobs":
            _print_rows(repo.list_jobs(args.status, args.source, args.limit), ("id", "status", "source", "title"))
            print("Totals:", json.dumps(repo.status_counts()))
            return 0
        if args.command == "prompt":
            return _prompt(config, repo, args)
        return _sources(config, repo, args)
    finally:
        repo.close()


if __name__ == "__main__":
    raise SystemExit(main())
