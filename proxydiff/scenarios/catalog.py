"""
Scenario catalog.

Per-path expectations are data, not code: they live in YAML and are validated
against a JSON Schema before anything is fetched.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import jsonschema
import yaml

from proxydiff.config.settings import DEFAULT_SCENARIOS_SCHEMA
from proxydiff.exceptions import ConfigurationError
from proxydiff.utils.logger import get_logger

logger = get_logger(__name__)

EXPECT_SAME = "same"
EXPECT_DIFFERENT = "different"
CLASSIFY_CMS = "cms"


@dataclass(frozen=True)
class Scenario:
    """
    One declarative expectation about how the reconfiguration treats some paths.

    Attributes:
        name: Human-readable name, unique within a catalog
        expect: "same" or "different"
        paths: Paths (optionally with query string), each checked in order
        classify: "cms" to also require the new response to look CMS-rendered
        pending: Declared but not checked yet
        description: Free text
    """

    name: str
    expect: str
    paths: List[str] = field(default_factory=list)
    classify: Optional[str] = None
    pending: bool = False
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scenario":
        paths = data.get("paths")
        if paths is None and "path" in data:
            paths = [data["path"]]
        return cls(
            name=data["name"],
            expect=data.get("expect", EXPECT_SAME),
            paths=list(paths or []),
            classify=data.get("classify"),
            pending=bool(data.get("pending", False)),
            description=data.get("description"),
        )


def _load_schema(schema_path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Scenario schema file not found: {schema_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {schema_path}: {e}") from e


def parse_catalog(
    content: Any,
    schema: Optional[Dict[str, Any]] = None,
    source: str = "<memory>",
) -> List[Scenario]:
    """
    Validate an already-parsed catalog document and build Scenario objects.

    Raises:
        ConfigurationError: Schema violation or duplicate scenario names
    """
    if schema is None:
        schema = _load_schema(DEFAULT_SCENARIOS_SCHEMA)

    try:
        jsonschema.validate(instance=content, schema=schema)
    except jsonschema.ValidationError as e:
        raise ConfigurationError(f"Scenario catalog {source} failed validation: {e.message}") from e
    except jsonschema.SchemaError as e:
        raise ConfigurationError(f"Scenario schema is invalid: {e.message}") from e

    scenarios = [Scenario.from_dict(item) for item in content.get("scenarios", [])]

    seen = set()
    for scenario in scenarios:
        if scenario.name in seen:
            raise ConfigurationError(f"Duplicate scenario name in {source}: {scenario.name}")
        seen.add(scenario.name)

    return scenarios


def load_catalog(
    catalog_path: Union[str, Path],
    schema_path: Union[str, Path] = DEFAULT_SCENARIOS_SCHEMA,
) -> List[Scenario]:
    """
    Load scenarios from YAML and validate them against the JSON Schema.

    Raises:
        ConfigurationError: Missing file, invalid YAML or schema violation
    """
    schema = _load_schema(schema_path)

    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Scenario catalog not found: {catalog_path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {catalog_path}: {e}") from e

    if not content:
        logger.warning(f"Empty scenario catalog: {catalog_path}")
        return []

    scenarios = parse_catalog(content, schema, source=str(catalog_path))
    logger.info(
        f"Loaded {len(scenarios)} scenarios",
        operation="load_catalog",
        context={"path": str(catalog_path), "pending": sum(1 for s in scenarios if s.pending)},
    )
    return scenarios
