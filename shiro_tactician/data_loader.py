"""
YAML Data Loader for Shiro Tactician.

Loads hand-written YAML files and parses them into Pydantic models.
Unit files hold either raw ability text (assembled on load) or stored
unit records with their buffs already extracted.
"""

import logging
from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from .assembler import RawUnitData, assemble_unit
from .models import SQUAD_SIZE, Environment, EnvironmentRecord, Squad, SquadRecord, Unit

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Keys only present in stored (already assembled) unit records
STORED_UNIT_KEYS = {"passives", "strategies", "specials"}


class DataLoader:
    """
    Loads game data from YAML files.

    Layout::

        data/
          units/*.yaml
          squads/*.yaml
          environments/*.yaml
    """

    def __init__(self, data_dir: str | Path):
        """
        Initialize the data loader.

        Args:
            data_dir: Path to the data directory containing
                      units/, squads/, environments/ subdirectories.
        """
        self.data_dir = Path(data_dir)
        self._validate_data_dir()

    def _validate_data_dir(self) -> None:
        """Validate that the data directory structure exists."""
        if not self.data_dir.exists():
            raise FileNotFoundError(f"Data directory not found: {self.data_dir}")

        for subdir in ("units", "squads", "environments"):
            path = self.data_dir / subdir
            if not path.exists():
                logger.warning(f"Expected subdirectory not found: {path}")

    def _load_yaml_file(self, file_path: Path) -> dict:
        """Load a single YAML file."""
        with open(file_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _is_data_file(self, file_path: Path) -> bool:
        """Check if a file is a data file (not schema/template/example)."""
        if file_path.stem.startswith("_"):
            return False
        return file_path.suffix in (".yaml", ".yml")

    def _data_files(self, subdir: str) -> list[Path]:
        directory = self.data_dir / subdir
        if not directory.exists():
            logger.warning(f"{subdir.title()} directory not found")
            return []
        return sorted(p for p in directory.iterdir() if self._is_data_file(p))

    def _read(self, file_path: Path) -> dict | None:
        try:
            data = self._load_yaml_file(file_path)
        except yaml.YAMLError as e:
            logger.error(f"YAML parse error in {file_path}:\n{e}")
            return None
        except OSError as e:
            logger.error(f"Error loading {file_path}: {e}")
            return None

        if not data:
            logger.warning(f"Empty file: {file_path}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Expected a mapping in {file_path}, got {type(data).__name__}")
            return None
        return data

    def _load_entity(self, file_path: Path, model_class: type[T]) -> T | None:
        """
        Load a single entity from a YAML file.

        Args:
            file_path: Path to the YAML file.
            model_class: Pydantic model class to parse into.

        Returns:
            Parsed model instance, or None if loading fails.
        """
        data = self._read(file_path)
        if data is None:
            return None
        try:
            return model_class.model_validate(data)
        except ValidationError as e:
            logger.error(f"Validation error in {file_path}:\n{e}")
            return None

    def load_unit_file(self, file_path: Path) -> Unit | None:
        """
        Load one unit file.

        Stored records are validated as-is; raw records are assembled.
        """
        data = self._read(file_path)
        if data is None:
            return None
        try:
            if data.keys() & STORED_UNIT_KEYS:
                return Unit.model_validate(data)
            raw = RawUnitData.model_validate(data)
        except ValidationError as e:
            logger.error(f"Validation error in {file_path}:\n{e}")
            return None
        if raw.id is None:
            raw = raw.model_copy(update={"id": file_path.stem})
        return assemble_unit(raw)

    def load_units(self) -> list[Unit]:
        """
        Load all unit files from the units/ directory.

        Returns:
            List of assembled Unit models.
        """
        units = []
        for file_path in self._data_files("units"):
            unit = self.load_unit_file(file_path)
            if unit:
                units.append(unit)
                logger.debug(f"Loaded unit: {unit.id}")

        logger.info(f"Loaded {len(units)} units")
        return units

    def load_squad_records(self) -> list[SquadRecord]:
        """Load all squad files from the squads/ directory."""
        squads = []
        for file_path in self._data_files("squads"):
            squad = self._load_entity(file_path, SquadRecord)
            if squad:
                squads.append(squad)
                logger.debug(f"Loaded squad: {squad.id}")

        logger.info(f"Loaded {len(squads)} squads")
        return squads

    def load_environments(self) -> list[EnvironmentRecord]:
        """Load all environment presets from the environments/ directory."""
        environments = []
        for file_path in self._data_files("environments"):
            environment = self._load_entity(file_path, EnvironmentRecord)
            if environment:
                environments.append(environment)
                logger.debug(f"Loaded environment: {environment.id}")

        logger.info(f"Loaded {len(environments)} environments")
        return environments

    def load_unit_by_id(self, unit_id: str) -> Unit | None:
        """
        Load a specific unit by ID.

        Args:
            unit_id: The unit's unique ID.

        Returns:
            Unit model if found, None otherwise.
        """
        units_dir = self.data_dir / "units"

        # Try exact filename match
        for ext in (".yaml", ".yml"):
            file_path = units_dir / f"{unit_id}{ext}"
            if file_path.exists():
                unit = self.load_unit_file(file_path)
                if unit and unit.id == unit_id:
                    return unit

        # Fall back to searching all files
        for unit in self.load_units():
            if unit.id == unit_id:
                return unit

        return None

    def load_environment_by_id(self, environment_id: str) -> Environment | None:
        """Load an environment preset by ID, stripped of its name."""
        for record in self.load_environments():
            if record.id == environment_id:
                return record.to_environment()
        return None

    def build_squad(self, record: SquadRecord, units: list[Unit] | None = None) -> Squad:
        """
        Resolve a squad record's unit ids into a Squad.

        Unknown ids leave their slot empty.
        """
        by_id = {unit.id: unit for unit in (units if units is not None else self.load_units())}
        slots: list[Unit | None] = []
        for unit_id in record.slots[:SQUAD_SIZE]:
            if unit_id is None:
                slots.append(None)
            elif unit_id in by_id:
                slots.append(by_id[unit_id])
            else:
                logger.warning(f"Squad {record.id}: unknown unit '{unit_id}'")
                slots.append(None)
        slots.extend([None] * (SQUAD_SIZE - len(slots)))
        return Squad(slots=slots)

    def load_squad_by_id(self, squad_id: str) -> Squad | None:
        """Load and resolve a squad by ID."""
        for record in self.load_squad_records():
            if record.id == squad_id:
                return self.build_squad(record)
        return None
