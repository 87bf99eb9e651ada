"""CLI interface using Typer."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.syntax import Syntax

from oitcalc.app_logging import configure_logging
from oitcalc.config import ConfigError, Settings, get_settings
from oitcalc.config.settings import default_config_path
from oitcalc.display import JSONFormatter, TableFormatter
from oitcalc.display.formatters import warning_to_dict
from oitcalc.dosing.calculator import (
    find_dilution_candidates,
    generate_default_protocol,
    generate_step_for_target,
)
from oitcalc.dosing.editing import set_di_threshold, set_food_a_strategy, set_food_b
from oitcalc.dosing.models import (
    DosingStrategy,
    Food,
    FoodAStrategy,
    FoodType,
    OITCalcError,
    ProtocolConfig,
)
from oitcalc.dosing.numeric import to_decimal
from oitcalc.dosing.serialization import (
    DEFAULT_PROTOCOL_NAME,
    SAMPLE_PROTOCOL,
    deserialize_protocol,
    serialize_protocol,
)
from oitcalc.dosing.validator import has_red_warnings, validate_protocol

app = typer.Typer(
    help="Oral immunotherapy dosing protocol calculator",
    no_args_is_help=True,
)
console = Console()

# Subcommand groups
config_app = typer.Typer(help="Show or create the config file")
app.add_typer(config_app, name="config")


# ============================================================================
# Helpers
# ============================================================================


def output_json(response, file=None) -> None:
    """Output JSON response to stdout or file."""
    json_str = json.dumps(response, indent=2)
    if file:
        file.write(json_str)
    else:
        print(json_str)


def fail(command: str, message: str, json_output: bool) -> NoReturn:
    """Report an error and exit with status 1."""
    if json_output:
        output_json({"success": False, "command": command, "errors": [message]})
    else:
        console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def load_protocol_config(command: str, json_output: bool) -> ProtocolConfig:
    """Build the protocol config from settings, exiting on a bad config file."""
    try:
        return get_settings().protocol_config()
    except (ConfigError, TypeError, ValueError) as e:
        fail(command, f"Invalid configuration: {e}", json_output)


def use_json(json_output: bool) -> bool:
    """True if --json was given or the config defaults to JSON output."""
    return json_output or get_settings().defaults.output_format == "json"


def parse_choice(enum_cls, value: str, option: str, command: str, json_output: bool):
    """Convert an option string to an enum member, exiting on a bad value."""
    try:
        return enum_cls(value.upper())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        fail(command, f"Invalid {option} {value!r}; choose from {choices}", json_output)


def make_food(name: str, protein: float, serving: float, food_type: FoodType) -> Food:
    """Build a Food from command-line values."""
    return Food(
        name=name,
        type=food_type,
        grams_in_serving=to_decimal(protein),
        serving_size=to_decimal(serving),
    )


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING or ERROR (default from config)"
    ),
) -> None:
    """Set up logging before any command runs."""
    try:
        level = log_level or get_settings().logging.level
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1)
    configure_logging(level)


# ============================================================================
# Protocol commands
# ============================================================================


@app.command()
def generate(
    name: str = typer.Argument(..., help="Food A name"),
    protein: float = typer.Option(..., "--protein", "-p", help="Grams of protein per serving"),
    serving: float = typer.Option(..., "--serving", "-s", help="Serving size (g or ml)"),
    food_type: str = typer.Option("SOLID", "--type", "-t", help="Food A type: SOLID or LIQUID"),
    strategy: Optional[str] = typer.Option(
        None, "--strategy", help="STANDARD or SLOW (default from config)"
    ),
    food_a_strategy: Optional[str] = typer.Option(
        None, "--food-a-strategy", help="DILUTE_INITIAL, DILUTE_ALL or DILUTE_NONE"
    ),
    di_threshold: Optional[float] = typer.Option(
        None, "--di-threshold", help="Neat Food A amount below which to dilute"
    ),
    food_b_name: Optional[str] = typer.Option(None, "--food-b", help="Food B name"),
    food_b_protein: Optional[float] = typer.Option(
        None, "--food-b-protein", help="Food B grams of protein per serving"
    ),
    food_b_serving: Optional[float] = typer.Option(
        None, "--food-b-serving", help="Food B serving size (g or ml)"
    ),
    food_b_type: str = typer.Option("SOLID", "--food-b-type", help="Food B type: SOLID or LIQUID"),
    food_b_threshold: Optional[float] = typer.Option(
        None, "--food-b-threshold", help="Neat Food B amount at which to switch"
    ),
    note: str = typer.Option("", "--note", help="Instructions stored with the protocol"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the protocol record to this JSON file"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Generate a dosing protocol for a food and validate it."""
    config = load_protocol_config("generate", json_output)
    json_output = use_json(json_output)
    settings = get_settings()
    food = make_food(
        name,
        protein,
        serving,
        parse_choice(FoodType, food_type, "--type", "generate", json_output),
    )

    if strategy is None:
        dosing_strategy = settings.defaults.dosing_strategy
    else:
        dosing_strategy = parse_choice(
            DosingStrategy, strategy, "--strategy", "generate", json_output
        )

    protocol = generate_default_protocol(food, config, dosing_strategy)
    if food_a_strategy is not None:
        protocol = set_food_a_strategy(
            protocol,
            parse_choice(
                FoodAStrategy, food_a_strategy, "--food-a-strategy", "generate", json_output
            ),
        )
    if di_threshold is not None:
        protocol = set_di_threshold(protocol, di_threshold)

    if food_b_name is not None:
        if food_b_protein is None or food_b_serving is None:
            fail(
                "generate",
                "--food-b needs --food-b-protein and --food-b-serving",
                json_output,
            )
        food_b = make_food(
            food_b_name,
            food_b_protein,
            food_b_serving,
            parse_choice(FoodType, food_b_type, "--food-b-type", "generate", json_output),
        )
        protocol = set_food_b(protocol, food_b, food_b_threshold)

    warnings = validate_protocol(protocol)

    if output:
        with open(output, "w") as f:
            output_json(serialize_protocol(protocol, note, name=name), file=f)

    if json_output:
        print(JSONFormatter().format_protocol(protocol, warnings, note, name=name))
    else:
        TableFormatter(console).format_protocol(protocol, warnings, name=name)
        if output:
            console.print(f"[dim]Saved to {output}[/dim]")

    if has_red_warnings(warnings):
        raise typer.Exit(1)


@app.command()
def candidates(
    target_mg: float = typer.Argument(..., help="Target protein per dose (mg)"),
    name: str = typer.Option("Food", "--name", help="Food name"),
    protein: float = typer.Option(..., "--protein", "-p", help="Grams of protein per serving"),
    serving: float = typer.Option(..., "--serving", "-s", help="Serving size (g or ml)"),
    food_type: str = typer.Option("SOLID", "--type", "-t", help="Food type: SOLID or LIQUID"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum candidates to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List dilution recipes for a target dose, best first."""
    config = load_protocol_config("candidates", json_output)
    json_output = use_json(json_output)
    food = make_food(
        name,
        protein,
        serving,
        parse_choice(FoodType, food_type, "--type", "candidates", json_output),
    )
    target = to_decimal(target_mg)

    found = find_dilution_candidates(target, food, config)

    if json_output:
        print(JSONFormatter().format_candidates(found, limit))
    else:
        TableFormatter(console).format_candidates(found, food, target, limit)


@app.command()
def step(
    target_mg: float = typer.Argument(..., help="Target protein per dose (mg)"),
    name: str = typer.Option("Food", "--name", help="Food name"),
    protein: float = typer.Option(..., "--protein", "-p", help="Grams of protein per serving"),
    serving: float = typer.Option(..., "--serving", "-s", help="Serving size (g or ml)"),
    food_type: str = typer.Option("SOLID", "--type", "-t", help="Food type: SOLID or LIQUID"),
    food_a_strategy: str = typer.Option(
        "DILUTE_INITIAL", "--food-a-strategy", help="DILUTE_INITIAL, DILUTE_ALL or DILUTE_NONE"
    ),
    di_threshold: Optional[float] = typer.Option(
        None, "--di-threshold", help="Neat amount below which to dilute (default from config)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Work out a single dosing step."""
    config = load_protocol_config("step", json_output)
    json_output = use_json(json_output)
    food = make_food(
        name,
        protein,
        serving,
        parse_choice(FoodType, food_type, "--type", "step", json_output),
    )
    strategy = parse_choice(
        FoodAStrategy, food_a_strategy, "--food-a-strategy", "step", json_output
    )
    target = to_decimal(target_mg)
    if di_threshold is None:
        threshold = config.default_food_a_dilution_threshold
    else:
        threshold = to_decimal(di_threshold)

    result = generate_step_for_target(target, 1, food, strategy, threshold, config)
    if result is None:
        fail(
            "step",
            f"No feasible dilution for {target_mg} mg of {name}; "
            "a direct step would be below measurable amounts",
            json_output,
        )

    if json_output:
        output_json({
            "success": True,
            "command": "step",
            "data": {
                "target_mg": str(result.target_mg),
                "method": result.method.value,
                "daily_amount": str(result.daily_amount),
                "daily_amount_unit": result.daily_amount_unit.value,
                "mix_food_amount": _optional_str(result.mix_food_amount),
                "mix_water_amount": _optional_str(result.mix_water_amount),
                "servings": _optional_str(result.servings),
            },
        })
    else:
        TableFormatter(console).format_step(result, food)


def _optional_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@app.command()
def validate(
    protocol_file: Path = typer.Argument(..., help="Protocol record JSON file"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Validate a saved protocol. Exits with status 1 on red warnings."""
    config = load_protocol_config("validate", json_output)
    json_output = use_json(json_output)

    if not protocol_file.exists():
        fail("validate", f"Protocol file not found: {protocol_file}", json_output)

    try:
        with open(protocol_file) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        fail("validate", f"Invalid JSON in protocol file: {e}", json_output)

    try:
        protocol = deserialize_protocol(data, config)
    except OITCalcError as e:
        fail("validate", f"Invalid protocol record: {e}", json_output)

    warnings = validate_protocol(protocol)
    red = has_red_warnings(warnings)

    if json_output:
        output_json({
            "success": not red,
            "command": "validate",
            "data": {
                "name": data.get("name", DEFAULT_PROTOCOL_NAME),
                "steps": len(protocol.steps),
                "warnings": [warning_to_dict(w) for w in warnings],
            },
        })
    else:
        TableFormatter(console).format_protocol(
            protocol, warnings, name=data.get("name", DEFAULT_PROTOCOL_NAME)
        )

    if red:
        raise typer.Exit(1)


@app.command()
def sample(
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the sample protocol record to this JSON file"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the built-in almond milk to almonds protocol."""
    config = load_protocol_config("sample", json_output)
    json_output = use_json(json_output)
    protocol = deserialize_protocol(SAMPLE_PROTOCOL, config)
    warnings = validate_protocol(protocol)

    if output:
        with open(output, "w") as f:
            output_json(SAMPLE_PROTOCOL, file=f)

    if json_output:
        print(
            JSONFormatter().format_protocol(
                protocol,
                warnings,
                SAMPLE_PROTOCOL["custom_note"],
                name=SAMPLE_PROTOCOL["name"],
                command="sample",
            )
        )
    else:
        TableFormatter(console).format_protocol(protocol, warnings, name=SAMPLE_PROTOCOL["name"])
        console.print(f"[dim]{SAMPLE_PROTOCOL['custom_note']}[/dim]")


# ============================================================================
# Config commands
# ============================================================================


@config_app.command("show")
def config_show(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the effective protocol limits and defaults."""
    try:
        settings = get_settings()
        config = settings.protocol_config()
    except ConfigError as e:
        fail("config show", f"Invalid configuration: {e}", json_output)

    data = {
        "config_path": str(default_config_path()),
        "protocol": {
            "min_measurable_mass": str(config.min_measurable_mass),
            "min_measurable_volume": str(config.min_measurable_volume),
            "min_servings_for_mix": str(config.min_servings_for_mix),
            "protein_tolerance": str(config.protein_tolerance),
            "default_food_a_dilution_threshold": str(config.default_food_a_dilution_threshold),
            "default_food_b_threshold": str(config.default_food_b_threshold),
            "max_solid_concentration": str(config.max_solid_concentration),
            "max_mix_water": str(config.max_mix_water),
            "max_daily_amount": str(config.max_daily_amount),
            "min_steps": config.min_steps,
        },
        "defaults": {
            "dosing_strategy": settings.defaults.dosing_strategy.value,
            "output_format": settings.defaults.output_format,
        },
        "logging": {"level": settings.logging.level},
    }

    if json_output:
        output_json({"success": True, "command": "config show", "data": data})
    else:
        console.print(Syntax(json.dumps(data, indent=2), "json"))


@config_app.command("init")
def config_init(
    path: Optional[Path] = typer.Option(None, "--path", help="Config file to write"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a config file with the default values."""
    config_path = path or default_config_path()
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists: {config_path}[/yellow]")
        console.print("Use --force to overwrite.")
        raise typer.Exit(1)

    Settings().save(config_path)
    console.print(f"[green]Wrote {config_path}[/green]")


if __name__ == "__main__":
    app()
