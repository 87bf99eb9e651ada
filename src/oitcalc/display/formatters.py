"""Output formatters for protocols, dilution candidates and warnings."""

from __future__ import annotations

import json
from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from oitcalc.dosing.models import (
    Candidate,
    Food,
    Method,
    Protocol,
    ProtocolWarning,
    Severity,
    Step,
    Unit,
)
from oitcalc.dosing.numeric import format_amount, format_number
from oitcalc.dosing.serialization import serialize_protocol

SEVERITY_STYLES = {
    Severity.RED: "red",
    Severity.YELLOW: "yellow",
}


def _step_cells(step: Step, food: Optional[Food]) -> list[str]:
    """Mix, water and daily cells for one step."""
    food_unit = food.unit if food is not None else Unit.GRAM
    if step.method == Method.DILUTE:
        mix = f"{format_amount(step.mix_food_amount, food_unit)} {food_unit.value}"
        water = f"{format_amount(step.mix_water_amount, Unit.MILLILITER)} ml"
        if step.servings is not None:
            water += f" [dim]({format_number(step.servings, 1)} servings)[/dim]"
    else:
        mix = "n/a"
        water = "n/a"

    if step.method == Method.CAPSULE:
        daily = "Capsule"
    else:
        daily = f"{format_amount(step.daily_amount, step.daily_amount_unit)} {step.daily_amount_unit.value}"
    return [mix, water, daily]


class TableFormatter:
    """Format results as Rich tables for terminal display."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize the formatter.

        Args:
            console: Rich console for output. If None, creates a new one.
        """
        self.console = console or Console()

    def format_protocol(
        self,
        protocol: Protocol,
        warnings: Optional[list[ProtocolWarning]] = None,
        name: Optional[str] = None,
    ) -> None:
        """Print a protocol's foods, steps and warnings.

        Args:
            protocol: Protocol to show
            warnings: Validation output to list under the table
            name: Optional protocol name for the header
        """
        header_lines = []
        if name:
            header_lines.append(f"[bold]{name}[/bold]")
        header_lines.append(self._food_line("Food A", protocol.food_a))
        if protocol.food_b is not None:
            header_lines.append(self._food_line("Food B", protocol.food_b))
            if protocol.food_b_threshold is not None:
                threshold = protocol.food_b_threshold
                header_lines.append(
                    f"Switch to Food B at {format_number(threshold.amount, 2)} {threshold.unit.value}"
                )
        header_lines.append(
            f"Strategy: {protocol.dosing_strategy.value} | "
            f"Food A: {protocol.food_a_strategy.value} "
            f"(threshold {format_number(protocol.di_threshold, 2)} {protocol.food_a.unit.value})"
        )
        self.console.print(Panel("\n".join(header_lines), title="OIT Protocol"))

        table = Table(title="Dosing Steps")
        table.add_column("Step", justify="right")
        table.add_column("Food", justify="center")
        table.add_column("Protein (mg)", justify="right", style="cyan")
        table.add_column("Method")
        table.add_column("Mix food", justify="right")
        table.add_column("Mix water", justify="right")
        table.add_column("Daily amount", justify="right", style="green")

        for step in protocol.steps:
            food = protocol.food_for(step.food)
            table.add_row(
                str(step.step_index),
                step.food.value,
                format_number(step.target_mg, 1),
                step.method.value,
                *_step_cells(step, food),
            )

        self.console.print(table)

        if warnings is not None:
            self.format_warnings(warnings)

    def format_candidates(
        self,
        candidates: list[Candidate],
        food: Food,
        target_mg,
        limit: int = 10,
    ) -> None:
        """Print the best dilution recipes for a target.

        Args:
            candidates: Ranked candidates
            food: Food being diluted
            target_mg: Target protein (mg)
            limit: Maximum rows to show
        """
        if not candidates:
            self.console.print(
                f"[yellow]No feasible dilution for {format_number(target_mg, 1)} mg of {food.name}[/yellow]"
            )
            return

        table = Table(
            title=f"Dilutions for {format_number(target_mg, 1)} mg of {food.name}"
        )
        table.add_column("#", justify="right")
        table.add_column(f"Mix food ({food.unit.value})", justify="right", style="cyan")
        table.add_column("Mix water (ml)", justify="right")
        table.add_column("Total (ml)", justify="right")
        table.add_column("Daily (ml)", justify="right", style="green")
        table.add_column("Servings", justify="right")

        for i, c in enumerate(candidates[:limit], start=1):
            table.add_row(
                str(i),
                format_amount(c.mix_food_amount, food.unit),
                format_number(c.mix_water_amount, 2),
                format_number(c.mix_total_volume, 2),
                format_amount(c.daily_amount, Unit.MILLILITER),
                format_number(c.servings, 1),
            )

        self.console.print(table)
        if len(candidates) > limit:
            self.console.print(f"[dim]{len(candidates) - limit} more not shown[/dim]")

    def format_step(self, step: Step, food: Food) -> None:
        """Print a single generated step."""
        mix, water, daily = _step_cells(step, food)
        lines = [
            f"[bold]Step {step.step_index}[/bold]: {format_number(step.target_mg, 1)} mg of {food.name}",
            f"Method: {step.method.value}",
            f"Daily amount: {daily}",
        ]
        if step.method == Method.DILUTE:
            lines.append(f"Mix: {mix} food + {water} water")
        self.console.print(Panel("\n".join(lines)))

    def format_warnings(self, warnings: list[ProtocolWarning]) -> None:
        """Print warnings, or a green all-clear."""
        if not warnings:
            self.console.print("[green]No warnings[/green]")
            return

        table = Table(title="Warnings")
        table.add_column("Step", justify="right")
        table.add_column("Code")
        table.add_column("Message")

        for w in warnings:
            style = SEVERITY_STYLES[w.severity]
            table.add_row(
                str(w.step_index) if w.step_index is not None else "-",
                f"[{style}]{w.code.value}[/{style}]",
                w.message,
            )
        self.console.print(table)


def warning_to_dict(warning: ProtocolWarning) -> dict[str, Any]:
    """JSON-compatible form of a warning."""
    return {
        "severity": warning.severity.value,
        "code": warning.code.value,
        "message": warning.message,
        "step_index": warning.step_index,
    }


def candidate_to_dict(candidate: Candidate) -> dict[str, str]:
    """JSON-compatible form of a candidate; numbers as exact strings."""
    return {
        "mix_food_amount": str(candidate.mix_food_amount),
        "mix_water_amount": str(candidate.mix_water_amount),
        "daily_amount": str(candidate.daily_amount),
        "mix_total_volume": str(candidate.mix_total_volume),
        "servings": str(candidate.servings),
    }


class JSONFormatter:
    """Format results as JSON for programmatic use.

    Output uses the same envelope as every --json command:
    ``{"success": ..., "command": ..., "data": ...}``.
    """

    def _envelope(self, command: str, success: bool, data: Any) -> str:
        return json.dumps({"success": success, "command": command, "data": data}, indent=2)

    def format_protocol(
        self,
        protocol: Protocol,
        warnings: list[ProtocolWarning],
        note: str = "",
        name: Optional[str] = None,
        command: str = "generate",
    ) -> str:
        """Return the protocol record and its warnings.

        ``success`` is false when any warning is red.
        """
        if name is None:
            record = serialize_protocol(protocol, note)
        else:
            record = serialize_protocol(protocol, note, name=name)
        data = {
            "protocol": record,
            "warnings": [warning_to_dict(w) for w in warnings],
        }
        success = not any(w.severity == Severity.RED for w in warnings)
        return self._envelope(command, success, data)

    def format_candidates(
        self, candidates: list[Candidate], limit: Optional[int] = None
    ) -> str:
        """Return candidates best first."""
        if limit is not None:
            candidates = candidates[:limit]
        return self._envelope("candidates", True, [candidate_to_dict(c) for c in candidates])
