"""Find scenario files by name."""
from pathlib import Path
from typing import Optional


class ScenarioFileFinder:
    """Search scenario files under the given base directory."""

    PRIORITY = (".json", ".yaml", ".yml")

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def find_by_name(self, name: str) -> Optional[Path]:
        """
        Find a scenario file by its base name.

        Args:
            name: File name without extension (e.g., "template")

        Returns:
            The Path if found, otherwise None. ``.json`` wins over YAML
            when several files share the name.
        """
        if not name or "/" in name or "\\" in name or name.startswith("."):
            return None

        candidates: list[Path] = []
        for ext in self.PRIORITY:
            for file_path in self.base_dir.rglob(f"{name}{ext}"):
                if file_path.is_file():
                    candidates.append(file_path)

        if not candidates:
            return None

        candidates.sort(key=lambda path: (self.PRIORITY.index(path.suffix), str(path)))
        return candidates[0]
