# ruff: noqa: I001
"""CLI for the ``spending_analysis`` package.

Command handlers (``cmd_*``) return a process exit code and print
``Error: ...`` to stderr on failure; the Typer commands below are thin
wrappers. The root callback loads a local ``.env`` with ``python-dotenv``
(never overriding variables already set) and configures logging once.
"""

from __future__ import annotations

import dataclasses
import sys
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from typer.models import ArgumentInfo, OptionInfo

from .categories import builtin_category_names, category_icon, parse_category
from .config import AnalysisSettings
from .logging_setup import configure_logging
from .models import CategoryRule, GatePolicy


def _settings(require_otp: bool) -> AnalysisSettings:
    settings = AnalysisSettings.from_env()
    if require_otp:
        settings = dataclasses.replace(settings, gate_policy=GatePolicy.REQUIRE_OTP)
    return settings


# ---- Command handlers ------------------------------------------------------------


def cmd_analyze(
    messages_path: str,
    *,
    rules_path: str | None = None,
    groups_path: str | None = None,
    database_url: str | None = None,
    force_rescan: bool = False,
    refresh_stale: bool = False,
    require_otp: bool = False,
    output_path: str | None = None,
) -> int:
    """Run a full analysis and print (or write) the report as JSON.

    Rules come from ``rules_path`` when given, otherwise from the active rules
    in the rule store at ``database_url``.
    ``groups_path`` names a JSON array of vendor groups for the group
    breakdown.
    """

    # Local imports keep CLI startup fast for --help
    from .cache import IncrementalCache
    from .ingest import dump_report, load_messages, load_rules, load_vendor_groups
    from .pipeline import run_analysis
    from .rule_store import RuleStore

    try:
        settings = _settings(require_otp)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        messages = load_messages(messages_path)
        rules = load_rules(rules_path) if rules_path else None
        groups = load_vendor_groups(groups_path) if groups_path else []
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Error: invalid input: {e}", file=sys.stderr)
        return 1

    try:
        cache = IncrementalCache(database_url=database_url)
        if rules is None:
            rules = RuleStore(database_url=database_url).active_rules()
        result = run_analysis(
            messages,
            cache=cache,
            settings=settings,
            rules=rules,
            vendor_groups=groups,
            force_rescan=force_rescan,
            refresh_stale=refresh_stale,
        )
    except Exception as e:
        print(f"Error: analysis failed: {e}", file=sys.stderr)
        return 1

    text = dump_report(result.report)
    if output_path:
        Path(output_path).write_text(text + "\n", encoding="utf-8")
        print(
            f"Wrote report to {output_path} "
            f"(classified={result.classified} reused={result.reused})"
        )
    else:
        print(text)
    return 0


def cmd_classify(messages_path: str, *, require_otp: bool = False) -> int:
    """Classify messages without touching any store.

    Prints ``<id>\\t<direction>\\t<amount>\\t<description>`` per message;
    non-transactions show ``-`` for direction and amount.
    """

    from .ingest import load_messages
    from .pipeline import classify_messages

    try:
        settings = _settings(require_otp)
        messages = load_messages(messages_path)
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        return 1
    except (ValidationError, ValueError) as e:
        print(f"Error: invalid input: {e}", file=sys.stderr)
        return 1

    for msg, tx in classify_messages(messages, settings):
        if tx is None:
            print(f"{msg.id}\t-\t-\t")
        else:
            print(f"{msg.id}\t{tx.direction.value}\t{tx.amount}\t{tx.description}")
    return 0


def cmd_exclude(message_id: int, *, database_url: str | None = None, include: bool = False) -> int:
    from .cache import IncrementalCache

    try:
        found = IncrementalCache(database_url=database_url).mark_excluded(
            message_id, excluded=not include
        )
    except Exception as e:
        print(f"Error: cache update failed: {e}", file=sys.stderr)
        return 1
    if not found:
        print(f"Error: no cached message with id {message_id}", file=sys.stderr)
        return 1
    print(f"{message_id}\t{'included' if include else 'excluded'}")
    return 0


def cmd_stale(*, database_url: str | None = None, hours: int | None = None) -> int:
    """Print ids of cache entries processed more than ``hours`` ago."""

    from .cache import IncrementalCache
    from .models import datetime_to_millis

    try:
        settings = AnalysisSettings.from_env()
        if hours is not None:
            settings = dataclasses.replace(settings, stale_after_hours=hours)
        ids = IncrementalCache(database_url=database_url).stale_ids(
            datetime_to_millis(datetime.now(UTC)) - settings.stale_after_ms
        )
    except Exception as e:
        print(f"Error: stale lookup failed: {e}", file=sys.stderr)
        return 1
    for mid in ids:
        print(mid)
    return 0


def cmd_rules_list(*, database_url: str | None = None) -> int:
    from .rule_store import RuleStore

    try:
        rules = RuleStore(database_url=database_url).list_rules()
    except Exception as e:
        print(f"Error: failed to load rules: {e}", file=sys.stderr)
        return 1
    for r in rules:
        state = "active" if r.active else "inactive"
        print(f"{r.id}\t{r.priority}\t{state}\t{r.name}\t{r.category}")
    return 0


def cmd_rules_add(
    *,
    name: str,
    category: str,
    keywords: list[str],
    sender_patterns: list[str],
    amount_min: str | None = None,
    amount_max: str | None = None,
    priority: int = 0,
    database_url: str | None = None,
) -> int:
    from .rule_store import RuleStore

    try:
        bounds = [Decimal(v) if v is not None else None for v in (amount_min, amount_max)]
    except InvalidOperation:
        print(f"Error: invalid amount bound: {amount_min!r}/{amount_max!r}", file=sys.stderr)
        return 1

    try:
        rule = CategoryRule(
            name=name,
            category=category,
            keywords=frozenset(keywords),
            sender_patterns=frozenset(sender_patterns),
            amount_min=bounds[0],
            amount_max=bounds[1],
            priority=priority,
        )
    except ValidationError as e:
        print(f"Error: invalid rule: {e}", file=sys.stderr)
        return 1

    try:
        stored = RuleStore(database_url=database_url).add_rule(rule)
    except ValueError as e:
        print(f"Error: invalid rule: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: failed to store rule: {e}", file=sys.stderr)
        return 1
    print(f"{stored.id}\t{stored.name}\t{stored.category}")
    return 0


def cmd_categories(*, database_url: str | None = None, builtin_only: bool = False) -> int:
    """Print ``<icon> <name>`` for every known category."""

    if builtin_only:
        names = builtin_category_names()
    else:
        from .rule_store import RuleStore

        try:
            names = RuleStore(database_url=database_url).all_categories()
        except Exception as e:
            print(f"Error: failed to load categories: {e}", file=sys.stderr)
            return 1
    for name in names:
        print(f"{category_icon(parse_category(name))} {name}")
    return 0


# ---- Typer-based console interface -----------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Extract transactions from bank/payment text messages and report spending. "
        "Loads DATABASE_URL and SA_* settings from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer inspects these when used as default values below.
MESSAGES_OPTION: OptionInfo = typer.Option(
    ...,
    "--messages",
    help="Path to a JSON array of messages",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a friendlier error
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
REQUIRE_OTP_OPTION: OptionInfo = typer.Option(
    False,
    "--require-otp",
    help="Only accept messages carrying an OTP-like code (same as SA_REQUIRE_OTP=1).",
)
MESSAGE_ID_ARGUMENT: ArgumentInfo = typer.Argument(..., help="Source message id")


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.command("analyze")
def analyze_cmd(
    messages_path: Annotated[Path, MESSAGES_OPTION],
    *,
    rules_path: Path | None = typer.Option(
        None, "--rules", help="JSON array of rules (defaults to the rule store)."
    ),
    groups_path: Path | None = typer.Option(
        None, "--groups", help="JSON array of vendor groups to total together."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
    force_rescan: bool = typer.Option(False, help="Reclassify every message."),
    refresh_stale: bool = typer.Option(
        False, help="Reclassify entries older than SA_STALE_AFTER_HOURS."
    ),
    require_otp: bool = REQUIRE_OTP_OPTION,
    output_path: Path | None = typer.Option(
        None, "--output", help="Write the JSON report here instead of stdout."
    ),
) -> None:
    """Classify, cache and aggregate messages; emit a JSON spending report."""

    _exit(
        cmd_analyze(
            str(messages_path),
            rules_path=str(rules_path) if rules_path else None,
            groups_path=str(groups_path) if groups_path else None,
            database_url=database_url,
            force_rescan=force_rescan,
            refresh_stale=refresh_stale,
            require_otp=require_otp,
            output_path=str(output_path) if output_path else None,
        )
    )


@app.command("classify")
def classify_cmd(
    messages_path: Annotated[Path, MESSAGES_OPTION],
    *,
    require_otp: bool = REQUIRE_OTP_OPTION,
) -> None:
    """Show how each message classifies, without caching anything."""

    _exit(cmd_classify(str(messages_path), require_otp=require_otp))


@app.command("exclude")
def exclude_cmd(
    message_id: Annotated[int, MESSAGE_ID_ARGUMENT],
    *,
    database_url: str | None = DATABASE_URL_OPTION,
    include: bool = typer.Option(False, help="Clear the exclusion instead."),
) -> None:
    """Exclude a cached transaction from every total (or include it again)."""

    _exit(cmd_exclude(message_id, database_url=database_url, include=include))


@app.command("stale")
def stale_cmd(
    *,
    database_url: str | None = DATABASE_URL_OPTION,
    hours: int | None = typer.Option(None, help="Override SA_STALE_AFTER_HOURS."),
) -> None:
    """List cached message ids due for a refresh."""

    _exit(cmd_stale(database_url=database_url, hours=hours))


@app.command("rules-list")
def rules_list_cmd(*, database_url: str | None = DATABASE_URL_OPTION) -> None:
    _exit(cmd_rules_list(database_url=database_url))


@app.command("rules-add")
def rules_add_cmd(
    *,
    name: str = typer.Option(..., help="Rule name."),
    category: str = typer.Option(..., help="Category to assign on match."),
    keyword: list[str] = typer.Option([], "--keyword", help="Keyword (repeatable)."),
    sender_pattern: list[str] = typer.Option(
        [], "--sender-pattern", help="Sender regex (repeatable)."
    ),
    amount_min: str | None = typer.Option(None, help="Inclusive lower bound, e.g. 100.00."),
    amount_max: str | None = typer.Option(None, help="Inclusive upper bound."),
    priority: int = typer.Option(0, help="Higher priorities are evaluated first."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Store a new categorization rule."""

    _exit(
        cmd_rules_add(
            name=name,
            category=category,
            keywords=keyword,
            sender_patterns=sender_pattern,
            amount_min=amount_min,
            amount_max=amount_max,
            priority=priority,
            database_url=database_url,
        )
    )


@app.command("categories")
def categories_cmd(
    *,
    database_url: str | None = DATABASE_URL_OPTION,
    builtin_only: bool = typer.Option(False, help="Skip the rule store."),
) -> None:
    """List built-in and custom categories with their icons."""

    _exit(cmd_categories(database_url=database_url, builtin_only=builtin_only))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
