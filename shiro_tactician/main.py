"""
CLI Entry Point for Shiro Tactician.

Provides commands for:
- Extracting buffs from ability text
- Exploring unit and squad data
- Resolving damage and damage scenarios
"""

import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .buffs import aggregate
from .damage import resolve
from .data_loader import DataLoader
from .models import ConditionContext, EnemyType, Environment, ParsedBuff, Stat, Unit
from .parser import extract as extract_buffs
from .scenarios import calculate_damage_range

# Setup rich console
console = Console()

# Setup logging
logging.basicConfig(
    level=os.environ.get("SHIRO_LOG_LEVEL", "INFO").upper(),
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="shiro-tactician",
    help="Buff extraction, squad aggregation and damage resolution for Shiro Pro",
    add_completion=False,
)

# Options set by the app callback
state: dict[str, Optional[Path]] = {"data_dir": None}

# Stats shown in the squad table
SQUAD_STATS = [
    Stat.ATTACK,
    Stat.DEFENSE,
    Stat.RANGE,
    Stat.ATTACK_SPEED,
    Stat.ATTACK_GAP,
    Stat.DAMAGE_DEALT,
    Stat.GIVE_DAMAGE,
    Stat.COST,
]


def get_data_dir() -> Path:
    """Get the data directory path."""
    if state["data_dir"] is not None:
        return state["data_dir"]

    # Check environment variable first
    if env_path := os.environ.get("SHIRO_DATA_DIR"):
        return Path(env_path)

    # Default to ./data relative to project root
    return Path(__file__).parent.parent / "data"


def get_loader() -> DataLoader:
    """Create a loader for the configured data directory, exiting if it is missing."""
    try:
        return DataLoader(get_data_dir())
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


def get_unit(loader: DataLoader, unit_id: str) -> Unit:
    unit = loader.load_unit_by_id(unit_id)
    if unit is None:
        console.print(f"[red]Error: Unit not found: {unit_id}[/]")
        raise typer.Exit(1)
    return unit


def get_environment(loader: DataLoader, env_id: Optional[str]) -> Environment:
    if env_id is None:
        return Environment()
    environment = loader.load_environment_by_id(env_id)
    if environment is None:
        console.print(f"[red]Error: Environment not found: {env_id}[/]")
        raise typer.Exit(1)
    return environment


def print_json(data) -> None:
    console.print_json(data=data, default=str)


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}".rstrip("0").rstrip(".")


def buff_table(buffs: list[ParsedBuff], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Stat", style="cyan")
    table.add_column("Mode")
    table.add_column("Value", style="green", justify="right")
    table.add_column("Target", style="yellow")
    table.add_column("Conditions")
    table.add_column("Notes", style="dim")

    for buff in buffs:
        notes = []
        if buff.confidence != "certain":
            notes.append(f"target {buff.confidence}")
        if buff.giant_scaled:
            notes.append("giant x5")
        if buff.is_duplicate:
            notes.append("duplicate")
        if buff.dynamic:
            notes.append(buff.dynamic.kind.value)
        if buff.range_threshold is not None:
            notes.append(f"range >= {_fmt(buff.range_threshold)}")
        if buff.note:
            notes.append(buff.note)
        table.add_row(
            buff.stat.value,
            buff.mode.value,
            _fmt(buff.value),
            buff.target.value,
            ", ".join(tag.value for tag in buff.condition_tags),
            "; ".join(notes),
        )
    return table


# =============================================================================
# COMMANDS
# =============================================================================


@app.callback()
def configure(
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", "-d", help="Data directory (overrides SHIRO_DATA_DIR)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Shiro Pro rules engine."""
    state["data_dir"] = data_dir
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@app.command()
def extract(
    text: str = typer.Argument(..., help="Ability text"),
    output_json: bool = typer.Option(False, "--json", help="Output raw JSON"),
):
    """Extract buffs from a piece of ability text."""
    buffs = extract_buffs(text)

    if output_json:
        print_json([buff.model_dump(mode="json") for buff in buffs])
        return

    if not buffs:
        console.print("[yellow]No buffs recognised.[/]")
        return

    console.print(buff_table(buffs, title="Extracted Buffs"))


@app.command()
def units():
    """List all units in the data directory."""
    loader = get_loader()

    with console.status("Loading units..."):
        all_units = loader.load_units()

    if not all_units:
        console.print("[yellow]No units found.[/]")
        return

    table = Table(title="Units")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Weapon")
    table.add_column("Attack", justify="right")
    table.add_column("Buffs", justify="right")

    for unit in sorted(all_units, key=lambda u: u.id):
        table.add_row(
            unit.id,
            unit.name,
            unit.weapon,
            _fmt(unit.base_stat(Stat.ATTACK)),
            str(len(unit.all_buffs())),
        )

    console.print(table)


@app.command()
def unit(
    unit_id: str = typer.Argument(..., help="Unit ID"),
    output_json: bool = typer.Option(False, "--json", help="Output raw JSON"),
):
    """Show a unit and its extracted buffs."""
    loader = get_loader()
    found = get_unit(loader, unit_id)

    if output_json:
        print_json(found.model_dump(mode="json"))
        return

    console.print(Panel(
        f"[bold]{found.name}[/]\n"
        f"Weapon: {found.weapon} ({found.weapon_range or '?'}/{found.weapon_type or '?'})\n"
        f"Attributes: {', '.join(found.attributes) or '-'}",
        title=found.id,
    ))

    for title, buffs in (
        ("Passive", found.passives),
        ("Activated (inactive)", found.strategies),
        ("Special", found.specials),
    ):
        if buffs:
            console.print(buff_table(buffs, title=title))


@app.command()
def squad(
    squad_id: str = typer.Argument(..., help="Squad ID"),
    env_id: Optional[str] = typer.Option(None, "--env", "-e", help="Environment preset ID"),
    output_json: bool = typer.Option(False, "--json", help="Output raw JSON"),
):
    """Aggregate buffs across a squad."""
    loader = get_loader()

    with console.status("Loading squad..."):
        formation = loader.load_squad_by_id(squad_id)
    if formation is None:
        console.print(f"[red]Error: Squad not found: {squad_id}[/]")
        raise typer.Exit(1)

    environment = get_environment(loader, env_id)
    results = aggregate(formation, ConditionContext.from_environment(environment))

    if output_json:
        print_json({uid: result.model_dump(mode="json") for uid, result in results.items()})
        return

    table = Table(title=f"Squad: {squad_id}")
    table.add_column("Unit", style="cyan")
    for stat in SQUAD_STATS:
        table.add_column(stat.value, justify="right")

    for uid, result in results.items():
        cells = []
        for stat in SQUAD_STATS:
            breakdown = result.breakdown[stat]
            cell = _fmt(result.stats[stat])
            if breakdown.allied:
                cell += f" [green](+{_fmt(breakdown.allied)})[/]"
            cells.append(cell)
        table.add_row(uid, *cells)

    console.print(table)


@app.command()
def damage(
    unit_id: str = typer.Argument(..., help="Unit ID"),
    env_id: Optional[str] = typer.Option(None, "--env", "-e", help="Environment preset ID"),
    enemy_defense: Optional[float] = typer.Option(None, "--enemy-defense", help="Enemy defense"),
    enemy_hp: Optional[float] = typer.Option(None, "--enemy-hp", help="Enemy HP percent"),
    enemy_type: Optional[EnemyType] = typer.Option(None, "--enemy-type", help="Enemy type"),
    strategy: bool = typer.Option(False, "--strategy", "-s", help="Activated-ability buffs on"),
    output_json: bool = typer.Option(False, "--json", help="Output raw JSON"),
):
    """Resolve a unit's damage through the five phases."""
    loader = get_loader()
    found = get_unit(loader, unit_id)
    environment = get_environment(loader, env_id)

    overrides = {}
    if enemy_defense is not None:
        overrides["enemy_defense"] = enemy_defense
    if enemy_hp is not None:
        overrides["enemy_hp_percent"] = enemy_hp
    if enemy_type is not None:
        overrides["enemy_type"] = enemy_type
    if overrides:
        environment = environment.model_copy(update=overrides)
    if strategy:
        found = found.with_strategies_active()

    result = resolve(found, environment)

    if output_json:
        print_json(result.model_dump(mode="json"))
        return

    breakdown = result.breakdown
    table = Table(title=f"Damage: {found.name}")
    table.add_column("Phase", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_column("Detail", style="dim")

    p1 = breakdown.phase1
    table.add_row(
        "1. Attack",
        _fmt(result.phase1_attack),
        f"base {_fmt(p1.base_attack)}, flat +{_fmt(p1.flat_buff_applied)}, "
        f"+{_fmt(p1.percent_buff_applied)}%, ambush x{_fmt(p1.ambush_multiplier)}",
    )
    table.add_row(
        "2. Multipliers",
        _fmt(result.phase2_damage),
        ", ".join(f"{m.type} x{_fmt(m.value)}" for m in breakdown.phase2.multipliers),
    )
    table.add_row(
        "3. Defense",
        _fmt(result.phase3_damage),
        "ignored" if breakdown.phase3.defense_ignored else f"defense {_fmt(breakdown.phase3.effective_defense)}",
    )
    table.add_row(
        "4. Dealt / taken",
        _fmt(result.phase4_damage),
        f"dealt +{_fmt(breakdown.phase4.damage_dealt)}%, taken +{_fmt(breakdown.phase4.damage_taken)}%",
    )
    table.add_row("5. Hits", _fmt(result.total_damage), f"x{breakdown.phase5.attack_count}")
    table.add_row("DPS", _fmt(result.dps), f"{_fmt(breakdown.dps.total_frames)} frames")
    if result.cycle_dps is not None:
        table.add_row("Special cycle DPS", _fmt(result.cycle_dps), f"special {_fmt(result.special_attack_damage)}")
    if result.strategy_cycle_dps is not None:
        table.add_row("Activated cycle DPS", _fmt(result.strategy_cycle_dps), f"instant {_fmt(result.strategy_damage)}")
    if breakdown.ability_mode is not None:
        table.add_row(
            "Ability mode DPS",
            _fmt(breakdown.ability_mode.average_dps),
            f"uptime {breakdown.ability_mode.uptime:.0%}",
        )
    if result.inspire_amount is not None:
        table.add_row("Inspire", _fmt(result.inspire_amount), "flat attack lent")

    console.print(table)


@app.command()
def scenarios(
    unit_id: str = typer.Argument(..., help="Unit ID"),
    env_id: Optional[str] = typer.Option(None, "--env", "-e", help="Environment preset ID"),
    output_json: bool = typer.Option(False, "--json", help="Output raw JSON"),
):
    """Show a unit's damage range across battle scenarios."""
    loader = get_loader()
    found = get_unit(loader, unit_id)
    environment = get_environment(loader, env_id)

    damage_range = calculate_damage_range(found, environment)

    if output_json:
        print_json(damage_range.model_dump(mode="json"))
        return

    table = Table(title=f"Scenarios: {found.name}")
    table.add_column("Scenario", style="cyan")
    table.add_column("Damage", justify="right")
    table.add_column("DPS", style="green", justify="right")

    table.add_row("base", _fmt(damage_range.base.total_damage), _fmt(damage_range.base.dps))
    for scenario in damage_range.scenarios:
        table.add_row(
            f"{scenario.scenario.value} ({scenario.label})",
            _fmt(scenario.result.total_damage),
            _fmt(scenario.result.dps),
        )

    console.print(table)
    if not damage_range.scenarios:
        console.print("[dim]No scenario changes the result.[/]")


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
