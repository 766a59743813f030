"""Generate JSON schemas from Pydantic models and save to schemas/ directory."""

import json
from pathlib import Path

from deliverygraph.contracts import BuildIssue, FieldCoercionWarning
from deliverygraph.kernel.fields import FieldDefinition
from deliverygraph.kernel.links import Link
from deliverygraph.kernel.resources import LocaleInfo
from deliverygraph.kernel.system_properties import SystemProperties

MODELS = {
    "system_properties": SystemProperties,
    "field_definition": FieldDefinition,
    "link": Link,
    "locale_info": LocaleInfo,
    "build_issue": BuildIssue,
    "field_coercion_warning": FieldCoercionWarning,
}


def generate_schemas():
    """Generate JSON schemas for all wire-facing models."""
    schemas_dir = Path(__file__).parent.parent / "schemas"
    schemas_dir.mkdir(exist_ok=True)

    for name, model in MODELS.items():
        # by_alias: the schemas describe the delivery API's camelCase documents
        schema = model.model_json_schema(by_alias=True)
        schema_path = schemas_dir / f"{name}.schema.json"
        with open(schema_path, 'w', encoding='utf-8') as f:
            json.dump(schema, f, indent=2, ensure_ascii=False)
        print(f"Generated: {schema_path}")

    print("\nSchema generation complete!")


if __name__ == "__main__":
    generate_schemas()
