"""
PaperCenter Search CLI - General purpose command-line interface.

Commands:
- corpus: Initialize the corpus store, import a corpus file, show statistics
- search: Search the corpus with field, kind, tag and variable filters
- prefs: Show or reset the stored search preferences
"""

# Load environment variables before any other imports
# This ensures production paths are available to config modules
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists (for production paths)
env_path = Path(__file__).parent.parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Standard library imports
import json
import sys
import logging
from typing import Dict, List, Optional, Tuple

# Third-party imports
import click
from dateutil import parser as date_parser
from rich.console import Console
from rich.table import Table

from config.search_config import DATABASE_PATH, PREFERENCES_PATH, LOG_LEVEL
from ..corpus.database import init_database
from ..corpus.models import Variable, VariableType
from ..corpus.provider import CorpusFetchError
from ..corpus.serialization import CorpusFormatError, load_corpus_file
from ..corpus.storage import CorpusStorage, SqliteCorpusProvider
from ..search.models import (
    DateRangeValue,
    DateValue,
    FilterLogicalMode,
    IntRangeValue,
    IntValue,
    ListValue,
    RangeBoundInclusion,
    ResultKind,
    SearchField,
    SearchOptions,
    TagFilter,
    TagFilterMode,
    TextValue,
    VariableFilterOperator,
    VariableFilterRule,
    VariableFilterValue,
    options_to_dict,
)
from ..search.preferences import SearchPreferences
from ..search.search_engine import SearchEngine

console = Console()

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

OPERATORS_BY_NAME = {operator.value.lower(): operator for operator in VariableFilterOperator}

RANGE_SEPARATOR = '..'


# ============================================================================
# Rule Parsing
# ============================================================================

def _split_range(raw: str) -> Tuple[str, str, RangeBoundInclusion, RangeBoundInclusion]:
    """
    Split "min..max" into its bounds.

    "(" / ")" make a bound open, "[" / "]" (or no bracket) keep it closed.
    """
    text = raw.strip()
    lower = RangeBoundInclusion.CLOSED
    upper = RangeBoundInclusion.CLOSED

    if text[:1] in '([':
        lower = RangeBoundInclusion.OPEN if text[0] == '(' else RangeBoundInclusion.CLOSED
        text = text[1:]
    if text[-1:] in ')]':
        upper = RangeBoundInclusion.OPEN if text[-1] == ')' else RangeBoundInclusion.CLOSED
        text = text[:-1]

    if RANGE_SEPARATOR not in text:
        raise ValueError(f"expected a range like 10..20, got {raw!r}")

    low, high = text.split(RANGE_SEPARATOR, 1)
    return low.strip(), high.strip(), lower, upper


def _parse_date(raw: str):
    try:
        return date_parser.isoparse(raw)
    except ValueError:
        raise ValueError(f"invalid date {raw!r}, expected YYYY-MM-DD")


def parse_rule_value(
    variable_type: VariableType,
    operator: VariableFilterOperator,
    raw: Optional[str]
) -> Optional[VariableFilterValue]:
    """
    Parse a rule value written on the command line.

    Args:
        variable_type: Type of the variable the rule applies to
        operator: Rule operator
        raw: Value text: "10", "10..20", "(10..20]", "2024-01-05", "a,b" or free text

    Returns:
        Typed filter value, or None for operators that take no value

    Raises:
        ValueError: If the value does not fit the variable type
    """
    if not operator.needs_value:
        return None
    if raw is None or not raw.strip():
        raise ValueError(f"operator {operator.value} needs a value")

    if variable_type == VariableType.INT:
        if operator == VariableFilterOperator.BETWEEN:
            low, high, lower, upper = _split_range(raw)
            return IntRangeValue(min=int(low), max=int(high), lower=lower, upper=upper)
        return IntValue(int(raw.strip()))

    if variable_type == VariableType.DATE:
        if operator == VariableFilterOperator.BETWEEN:
            low, high, lower, upper = _split_range(raw)
            return DateRangeValue(min=_parse_date(low), max=_parse_date(high), lower=lower, upper=upper)
        return DateValue(_parse_date(raw.strip()))

    if variable_type == VariableType.LIST:
        return ListValue(tuple(option.strip() for option in raw.split(',') if option.strip()))

    return TextValue(raw)


def resolve_variable(reference: str, variables: List[Variable]) -> Variable:
    """Find a variable by id, else by case-insensitive name."""
    for variable in variables:
        if variable.id == reference:
            return variable
    for variable in variables:
        if variable.name.casefold() == reference.casefold():
            return variable
    raise ValueError(f"unknown variable {reference!r}")


def parse_rule(rule_text: str, variables: List[Variable]) -> VariableFilterRule:
    """
    Parse a --rule option of the form variable:operator[:value].

    Raises:
        ValueError: If the variable, operator or value is invalid
    """
    parts = rule_text.split(':', 2)
    if len(parts) < 2:
        raise ValueError(f"expected variable:operator[:value], got {rule_text!r}")

    variable = resolve_variable(parts[0].strip(), variables)

    operator = OPERATORS_BY_NAME.get(parts[1].strip().lower())
    if operator is None:
        raise ValueError(f"unknown operator {parts[1]!r}")
    if operator not in VariableFilterOperator.allowed_for(variable.type):
        allowed = ', '.join(op.value for op in VariableFilterOperator.allowed_for(variable.type))
        raise ValueError(f"operator {operator.value} is not allowed for {variable.type.value} variables ({allowed})")

    value = parse_rule_value(variable.type, operator, parts[2] if len(parts) > 2 else None)
    return VariableFilterRule(variable_id=variable.id, operator=operator, value=value)


# ============================================================================
# Output Helpers
# ============================================================================

def print_stats_table(title: str, stats: Dict[str, int]):
    table = Table(title=title)
    table.add_column("Entity", style="cyan")
    table.add_column("Count", style="green", justify="right")

    for name, count in stats.items():
        table.add_row(name.replace('_', ' ').title(), str(count))

    console.print(table)


def print_options(options: SearchOptions):
    table = Table(title="Search Preferences")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Fields", ", ".join(f.title for f in sorted(options.field_scope, key=lambda f: f.value)))
    table.add_row("Result Kinds", ", ".join(k.title for k in sorted(options.result_kinds, key=lambda k: k.value)))
    table.add_row("Historical Versions", "yes" if options.include_historical_versions else "no")
    table.add_row("Max Results", str(options.max_results))
    table.add_row("Tag Keyword", options.tag_filter.name_keyword or "-")
    table.add_row("Selected Tags", ", ".join(sorted(options.tag_filter.selected_tag_ids)) or "-")
    table.add_row("Tag Mode", options.tag_filter.mode.value)
    table.add_row("Variable Rules", str(len(options.variable_rules)))
    table.add_row("Rule Mode", options.variable_rules_mode.value)

    console.print(table)


@click.group()
def cli():
    """PaperCenter Search CLI - Manage the corpus store and search it."""
    pass


# ============================================================================
# Corpus Commands
# ============================================================================

@cli.group()
def corpus():
    """Manage the SQLite corpus store."""
    pass


@corpus.command(name='init')
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def corpus_init(db_path):
    """Initialize the database schema."""
    console.print("\n[bold cyan]Initializing Database[/bold cyan]\n")

    try:
        db = init_database(db_path)
        db.close()
        console.print(f"[green]✓[/green] Database initialized at: {db_path}")
        console.print("[green]✓[/green] Schema created successfully\n")
    except Exception as e:
        console.print(f"[red]Error initializing database: {e}[/red]\n")
        sys.exit(1)


@corpus.command(name='import')
@click.argument('corpus_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def corpus_import(corpus_file, db_path):
    """
    Import a corpus JSON file, replacing the stored corpus.

    Example usage:
        papercenter corpus import corpus.json
    """
    console.print(f"\n[bold cyan]Importing corpus from:[/bold cyan] {corpus_file}\n")

    try:
        loaded = load_corpus_file(corpus_file)
    except (CorpusFormatError, OSError) as e:
        console.print(f"[red]Invalid corpus file: {e}[/red]\n")
        sys.exit(1)

    try:
        with init_database(db_path) as db:
            stats = CorpusStorage(db.connect()).save_corpus(loaded)
    except Exception as e:
        console.print(f"[red]Error saving corpus: {e}[/red]\n")
        if LOG_LEVEL == "DEBUG":
            import traceback
            console.print(traceback.format_exc())
        sys.exit(1)

    console.print("[bold green]Import Complete![/bold green]\n")
    print_stats_table("Imported Corpus", stats)
    console.print()


@corpus.command(name='stats')
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def corpus_stats(db_path):
    """Display corpus statistics."""
    console.print("\n[bold cyan]PaperCenter Corpus Statistics[/bold cyan]\n")

    try:
        stored = SqliteCorpusProvider(db_path).fetch_corpus()
    except CorpusFetchError as e:
        console.print(f"[red]Could not read corpus: {e}[/red]\n")
        sys.exit(1)

    print_stats_table("Corpus Statistics", stored.stats())
    console.print()


# ============================================================================
# Search Commands
# ============================================================================

@cli.command()
@click.argument('query', required=False, default='')
@click.option('--field', '-f', 'fields', multiple=True,
              type=click.Choice([f.value for f in SearchField]), help='Field to match (repeatable)')
@click.option('--kind', '-k', 'kinds', multiple=True,
              type=click.Choice([k.value for k in ResultKind]), help='Result kind to return (repeatable)')
@click.option('--historical/--current-only', default=None, help='Search every page version or only the current one')
@click.option('--limit', '-l', type=int, help='Maximum results to return')
@click.option('--tag', '-t', 'tag_ids', multiple=True, help='Tag ID to filter by (repeatable)')
@click.option('--tag-keyword', help='Keep results with a tag whose name contains this text')
@click.option('--tag-mode', type=click.Choice([m.value for m in TagFilterMode]), help='Match any or all tags')
@click.option('--rule', '-r', 'rules', multiple=True,
              help='Variable rule variable:operator[:value], e.g. year:between:2019..2021')
@click.option('--rule-mode', type=click.Choice([m.value for m in FilterLogicalMode]), help='Combine rules')
@click.option('--json', 'as_json', is_flag=True, help='Print results as JSON')
@click.option('--db-path', default=DATABASE_PATH, help='Database path')
@click.option('--prefs-path', default=PREFERENCES_PATH, help='Search preferences path')
def search(query, fields, kinds, historical, limit, tag_ids, tag_keyword, tag_mode, rules, rule_mode,
           as_json, db_path, prefs_path):
    """
    Search the corpus.

    Options that are not given come from the stored search preferences.

    Example usage:
        papercenter search "invoice"
        papercenter search "invoice" --kind ocrHit --kind noteHit
        papercenter search --tag t-urgent --rule year:between:2019..2021
        papercenter search "draft" --rule status:in:open,blocked --rule-mode or
    """
    provider = SqliteCorpusProvider(db_path)
    options = SearchPreferences(prefs_path).options

    changes = {}
    if fields:
        changes['field_scope'] = frozenset(SearchField(f) for f in fields)
    if kinds:
        changes['result_kinds'] = frozenset(ResultKind(k) for k in kinds)
    if historical is not None:
        changes['include_historical_versions'] = historical
    if limit is not None:
        changes['max_results'] = limit
    if tag_ids or tag_keyword is not None or tag_mode:
        changes['tag_filter'] = TagFilter(
            name_keyword=tag_keyword or '',
            selected_tag_ids=frozenset(tag_ids),
            mode=TagFilterMode(tag_mode) if tag_mode else options.tag_filter.mode,
        )
    if rule_mode:
        changes['variable_rules_mode'] = FilterLogicalMode(rule_mode)

    if rules:
        try:
            variables = provider.fetch_variables()
            changes['variable_rules'] = tuple(parse_rule(rule_text, variables) for rule_text in rules)
        except CorpusFetchError as e:
            console.print(f"[red]Could not read corpus: {e}[/red]\n")
            sys.exit(1)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="'--rule'")

    options = options.with_changes(**changes)
    outcome = SearchEngine(provider).run(query, options)

    if outcome.failed:
        console.print(f"[red]Search error: {outcome.error}[/red]\n")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({
            'query': query,
            'total': len(outcome.results),
            'query_time_ms': outcome.query_time_ms,
            'options': options_to_dict(options),
            'results': [result.to_dict() for result in outcome.results],
        }, indent=2))
        return

    console.print(f"\n[bold cyan]Searching for:[/bold cyan] '{query}'\n")
    console.print(f"[bold green]Found {len(outcome.results)} results[/bold green]")
    console.print(f"Query time: {outcome.query_time_ms}ms\n")

    if not outcome.results:
        console.print("[yellow]No results found. Try adjusting your query or filters.[/yellow]\n")
        return

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Kind", style="yellow")
    table.add_column("Title", style="cyan")
    table.add_column("Location", style="dim")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Snippet", max_width=60)

    for i, result in enumerate(outcome.results, 1):
        table.add_row(str(i), result.kind.title, result.title, result.subtitle, str(result.score), result.snippet)

    console.print(table)
    console.print()


# ============================================================================
# Preferences Commands
# ============================================================================

@cli.group()
def prefs():
    """Show or reset the stored search preferences."""
    pass


@prefs.command(name='show')
@click.option('--prefs-path', default=PREFERENCES_PATH, help='Search preferences path')
@click.option('--json', 'as_json', is_flag=True, help='Print preferences as JSON')
def prefs_show(prefs_path, as_json):
    """Display the stored search preferences."""
    options = SearchPreferences(prefs_path).options

    if as_json:
        click.echo(json.dumps(options_to_dict(options), indent=2))
        return

    console.print()
    print_options(options)
    console.print()


@prefs.command(name='reset')
@click.option('--prefs-path', default=PREFERENCES_PATH, help='Search preferences path')
def prefs_reset(prefs_path):
    """Reset the stored search preferences to the defaults."""
    try:
        SearchPreferences(prefs_path).reset_to_defaults()
    except OSError as e:
        console.print(f"[red]Could not reset preferences: {e}[/red]\n")
        sys.exit(1)

    console.print("[green]✓[/green] Search preferences reset to defaults\n")


if __name__ == '__main__':
    cli()
