from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ImportConfig:
    """
    Configuration for the recipe import command.
    """

    data_dir: Path = Path("data")
    recipes_filename: str = "recipes.json"

    @property
    def recipes_path(self) -> Path:
        return self.data_dir / self.recipes_filename


DEFAULT_IMPORT_CONFIG = ImportConfig()
