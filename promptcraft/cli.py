"""PromptCraft CLI: manage and render prompt templates."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import PromptCraftConfig, Services, build_services
from .errors import PromptCraftError
from .models import PromptCategory, PromptSearchCriteria, PromptVariable
from .usecases import CreatePromptDTO, RenderPromptDTO, UpdatePromptDTO

console = Console()

CATEGORY_CHOICE = click.Choice([c.value for c in PromptCategory])
OUTPUT_CHOICE = click.Choice(["table", "json"])


def _setup_logging(level: str) -> None:
    """Send package logs to stderr."""
    logger = logging.getLogger("promptcraft")
    logger.setLevel(level.upper())
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)


def _services(ctx: click.Context) -> Services:
    if ctx.obj.get("services") is None:
        try:
            ctx.obj["services"] = build_services(ctx.obj["config"])
        except PromptCraftError as e:
            _fail(e)
    return ctx.obj["services"]


def _fail(error: PromptCraftError) -> None:
    console.print(f"[red]Error:[/red] {error.message}")
    sys.exit(1)


def _parse_var(spec: str, required: set[str]) -> PromptVariable:
    """Parse ``name:type:description`` into a variable declaration."""
    parts = spec.split(":", 2)
    if len(parts) < 2:
        raise click.BadParameter(f"expected name:type[:description], got {spec!r}")
    name, var_type = parts[0], parts[1]
    description = parts[2] if len(parts) == 3 else ""
    try:
        return PromptVariable(
            name=name, description=description, type=var_type, required=name in required
        )
    except PromptCraftError as e:
        raise click.BadParameter(e.message)


def _parse_values(pairs: tuple[str, ...]) -> dict[str, str]:
    values: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {pair!r}")
        values[key] = value
    return values


def _print_prompt_table(prompts, title: str) -> None:
    if not prompts:
        console.print("[yellow]No prompts found.[/yellow]")
        return

    table = Table(title=title)
    table.add_column("#", style="dim", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Tags")
    table.add_column("Updated")

    for i, p in enumerate(prompts, 1):
        table.add_row(
            str(i),
            p.id,
            ("★ " if p.is_favorite else "") + p.name,
            p.category.value,
            ", ".join(p.tags),
            p.updated_at.isoformat()[:10],
        )
    console.print(table)


def _emit(prompts, output: str, title: str) -> None:
    if output == "json":
        click.echo(json.dumps([p.to_dict() for p in prompts], indent=2))
    else:
        _print_prompt_table(prompts, title)


@click.group()
@click.version_option(package_name="promptcraft")
@click.option(
    "--backend",
    type=click.Choice(["filesystem", "sqlite", "postgres"]),
    default=None,
    help="Storage backend (default: from environment)",
)
@click.option("--prompts-dir", type=click.Path(path_type=Path), default=None, help="Prompts directory")
@click.option("--db", "sqlite_path", type=click.Path(path_type=Path), default=None, help="SQLite file")
@click.option("--log-level", default=None, help="Logging level")
@click.pass_context
def cli(ctx, backend, prompts_dir, sqlite_path, log_level):
    """PromptCraft CLI - manage and render prompt templates."""
    try:
        config = PromptCraftConfig.from_env()
    except PromptCraftError as e:
        _fail(e)
    if backend:
        config.backend = backend
    if prompts_dir:
        config.prompts_dir = prompts_dir
    if sqlite_path:
        config.sqlite_path = sqlite_path
    _setup_logging(log_level or config.log_level)
    ctx.obj = {"config": config, "services": None}


@cli.command("list")
@click.option("--category", "-c", type=CATEGORY_CHOICE, default=None, help="Only this category")
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="table", help="Output format")
@click.pass_context
def list_prompts(ctx, category: str | None, output: str):
    """List prompts, most relevant first."""
    use_cases = _services(ctx).use_cases
    try:
        if category:
            prompts = use_cases.get_prompts_by_category(category)
        else:
            prompts = use_cases.get_all_prompts()
    except PromptCraftError as e:
        _fail(e)
    _emit(prompts, output, "Prompts")


@cli.command()
@click.argument("prompt_id")
@click.option("--output", "-o", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def show(ctx, prompt_id: str, output: str):
    """Show a single prompt."""
    try:
        prompt = _services(ctx).use_cases.get_prompt_by_id(prompt_id)
    except PromptCraftError as e:
        _fail(e)
    if prompt is None:
        _fail(PromptCraftError.prompt_not_found(prompt_id))

    if output == "json":
        click.echo(json.dumps(prompt.to_dict(), indent=2))
        return

    console.print(
        Panel(
            prompt.content,
            title=prompt.name,
            subtitle=f"{prompt.category.value} | v{prompt.version}",
        )
    )
    console.print(prompt.description)
    if prompt.variables:
        table = Table(title="Variables")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Required")
        table.add_column("Default")
        table.add_column("Description")
        for v in prompt.variables:
            table.add_row(
                v.name,
                v.type.value,
                "yes" if v.required else "no",
                "" if v.default_value is None else str(v.default_value),
                v.description,
            )
        console.print(table)


@cli.command()
@click.argument("query", required=False)
@click.option("--category", "-c", type=CATEGORY_CHOICE, default=None)
@click.option("--tag", "-t", "tags", multiple=True, help="Match any of these tags")
@click.option("--author", "-a", default=None)
@click.option("--limit", "-n", type=int, default=None)
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="table")
@click.pass_context
def search(ctx, query, category, tags, author, limit, output):
    """Search prompts by text, category, tags and author."""
    criteria = PromptSearchCriteria(
        query=query, category=category, tags=tags, author=author, limit=limit
    )
    try:
        results = _services(ctx).use_cases.search_prompts(criteria)
    except PromptCraftError as e:
        _fail(e)
    _emit(results, output, f"Results for {query!r}" if query else "Results")


@cli.command()
@click.option("--name", required=True)
@click.option("--description", required=True)
@click.option("--content", default=None, help="Template text")
@click.option("--file", "content_file", type=click.Path(exists=True, path_type=Path), default=None)
@click.option("--category", "-c", type=CATEGORY_CHOICE, default="personal")
@click.option("--tag", "-t", "tags", multiple=True)
@click.option("--author", default=None)
@click.option("--version", "version_", default=None)
@click.option("--var", "var_specs", multiple=True, help="Variable as name:type:description")
@click.option("--require", "required", multiple=True, help="Mark a variable as required")
@click.pass_context
def add(ctx, name, description, content, content_file, category, tags, author, version_, var_specs, required):
    """Create a new prompt."""
    if content_file is not None:
        content = content_file.read_text(encoding="utf-8")
    variables = [_parse_var(spec, set(required)) for spec in var_specs]
    dto = CreatePromptDTO(
        name=name,
        description=description,
        content=content or "",
        category=category,
        tags=list(tags),
        author=author,
        version=version_,
        variables=variables,
    )
    use_cases = _services(ctx).use_cases
    errors = use_cases.validate_prompt_data(dto)
    if errors:
        for error in errors:
            console.print(f"[red]Error:[/red] {error}")
        sys.exit(1)

    try:
        prompt = use_cases.create_prompt(dto)
    except PromptCraftError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Created {prompt.name} ({prompt.id})")


@cli.command()
@click.argument("prompt_id")
@click.option("--name", default=None)
@click.option("--description", default=None)
@click.option("--content", default=None)
@click.option("--tag", "-t", "tags", multiple=True, help="Replace tags")
@click.option("--author", default=None)
@click.pass_context
def update(ctx, prompt_id, name, description, content, tags, author):
    """Update fields of an existing prompt."""
    dto = UpdatePromptDTO(
        id=prompt_id,
        name=name,
        description=description,
        content=content,
        tags=list(tags) if tags else None,
        author=author,
    )
    use_cases = _services(ctx).use_cases
    errors = use_cases.validate_prompt_data(dto)
    if errors:
        for error in errors:
            console.print(f"[red]Error:[/red] {error}")
        sys.exit(1)

    try:
        prompt = use_cases.update_prompt(dto)
    except PromptCraftError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Updated {prompt.name}")


@cli.command()
@click.argument("prompt_id")
@click.option("--set", "-s", "pairs", multiple=True, help="Variable value as key=value")
@click.option("--output", "-o", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def render(ctx, prompt_id, pairs, output):
    """Render a prompt with variable values."""
    dto = RenderPromptDTO(id=prompt_id, variable_values=_parse_values(pairs))
    try:
        result = _services(ctx).use_cases.render_prompt(dto)
    except PromptCraftError as e:
        _fail(e)

    if output == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(result.rendered)
    for error in result.errors:
        console.print(f"[yellow]Warning:[/yellow] {error}")


@cli.command()
@click.argument("prompt_id")
@click.pass_context
def delete(ctx, prompt_id):
    """Delete a prompt."""
    try:
        deleted = _services(ctx).use_cases.delete_prompt(prompt_id)
    except PromptCraftError as e:
        _fail(e)
    if deleted:
        console.print(f"[green]✓[/green] Deleted {prompt_id}")
    else:
        console.print(f"[yellow]No prompt with ID {prompt_id}[/yellow]")


@cli.command()
@click.argument("prompt_id")
@click.option("--off", is_flag=True, help="Remove the favorite flag")
@click.pass_context
def favorite(ctx, prompt_id, off):
    """Mark a prompt as favorite."""
    try:
        prompt = _services(ctx).use_cases.set_favorite(prompt_id, not off)
    except PromptCraftError as e:
        _fail(e)
    if prompt is None:
        _fail(PromptCraftError.prompt_not_found(prompt_id))
    state = "removed from" if off else "added to"
    console.print(f"[green]✓[/green] {prompt.name} {state} favorites")


@cli.command()
@click.argument("prompt_id", required=False)
@click.pass_context
def validate(ctx, prompt_id):
    """Check that placeholders and declared variables agree.

    Validates one prompt, or every prompt when no ID is given. Exits
    with status 1 if any placeholder lacks a declaration.
    """
    use_cases = _services(ctx).use_cases
    try:
        if prompt_id:
            prompt = use_cases.get_prompt_by_id(prompt_id)
            if prompt is None:
                _fail(PromptCraftError.prompt_not_found(prompt_id))
            prompts = [prompt]
        else:
            prompts = use_cases.get_all_prompts()
    except PromptCraftError as e:
        _fail(e)

    total_errors = total_warnings = 0
    with_issues = 0
    for prompt in prompts:
        errors, warnings = prompt.validate_consistency()
        if not errors and not warnings:
            continue
        with_issues += 1
        total_errors += len(errors)
        total_warnings += len(warnings)
        console.print(f"[bold]{prompt.name}[/bold] ({prompt.id})")
        for error in errors:
            console.print(f"  [red]Error:[/red] {error}")
        for warning in warnings:
            console.print(f"  [yellow]Warning:[/yellow] {warning}")

    if not with_issues:
        console.print(f"[green]✓[/green] {len(prompts)} prompt(s) consistent")
        return
    console.print(
        f"{with_issues}/{len(prompts)} prompt(s) have issues: "
        f"{total_errors} error(s), {total_warnings} warning(s)"
    )
    if total_errors:
        sys.exit(1)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show prompt counts per category."""
    try:
        counts = _services(ctx).use_cases.get_category_statistics()
    except PromptCraftError as e:
        _fail(e)
    console.print(
        Panel(
            "\n".join(f"{c.value}: {counts[c.value]}" for c in PromptCategory)
            + f"\n\nTotal: {counts['total']}",
            title="Prompt Statistics",
        )
    )


def main():
    cli()


if __name__ == "__main__":
    main()
