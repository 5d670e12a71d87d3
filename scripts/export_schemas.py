"""Export JSON schemas for the wire models (PolicyData, ProcessingOptions, AgentSettings)."""

import json
from pathlib import Path

from pydantic import BaseModel

from backend.app.models import AgentSettings, PolicyData, ProcessingOptions

SCHEMA_MODELS: dict[str, type[BaseModel]] = {
    "PolicyData": PolicyData,
    "ProcessingOptions": ProcessingOptions,
    "AgentSettings": AgentSettings,
}


def main(schemas_dir: Path = Path("docs/schemas")) -> list[Path]:
    """Export schemas to docs/schemas/ (camelCase, as sent over the wire)."""
    schemas_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for name, model in SCHEMA_MODELS.items():
        path = schemas_dir / f"{name}.schema.json"
        with open(path, "w") as f:
            json.dump(model.model_json_schema(by_alias=True), f, indent=2)
        print(f"Exported {name} schema to {path}")
        written.append(path)
    return written


if __name__ == "__main__":
    main()
