# infrastructure/scenario/__init__.py
from infrastructure.scenario.base_loader import ScenarioLoadError, ScenarioLoaderBase, dump_definition
from infrastructure.scenario.file_finder import ScenarioFileFinder
from infrastructure.scenario.json_loader import JsonScenarioLoader
from infrastructure.scenario.loader_registry import ScenarioLoaderRegistry
from infrastructure.scenario.yaml_loader import YamlScenarioLoader

__all__ = [
    "ScenarioLoadError",
    "ScenarioLoaderBase",
    "ScenarioLoaderRegistry",
    "ScenarioFileFinder",
    "YamlScenarioLoader",
    "JsonScenarioLoader",
    "dump_definition",
]
