import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

from acceptance_bench.bench.errors import UnknownSchema

SCHEMAS_ROOT = Path(__file__).parent / "json_schemas"


def schema_key(schema_id: str) -> str:
    """
    Accept the spellings feature files use:
      - message_dto
      - message_dto.json
      - schemas/message_dto.json
    """
    return Path(schema_id.strip()).stem


class SchemaRegistry:
    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = Path(root) if root else SCHEMAS_ROOT
        self._validators: Dict[str, Draft202012Validator] = {}

    def names(self) -> List[str]:
        return sorted(p.stem for p in self.root.glob("*.json"))

    def load(self, schema_id: str) -> Dict[str, Any]:
        key = schema_key(schema_id)
        path = self.root / f"{key}.json"
        if not path.exists():
            raise UnknownSchema(schema_id, self.names())
        return json.loads(path.read_text(encoding="utf-8"))

    def validator(self, schema_id: str) -> Draft202012Validator:
        key = schema_key(schema_id)
        if key not in self._validators:
            schema = self.load(key)
            Draft202012Validator.check_schema(schema)
            self._validators[key] = Draft202012Validator(schema)
        return self._validators[key]

    def problems(self, instance: Any, schema_id: str) -> List[str]:
        """All mismatches, ordered by location in the instance."""
        errors = sorted(self.validator(schema_id).iter_errors(instance), key=lambda e: [str(p) for p in e.absolute_path])
        out = []
        for err in errors:
            where = "/".join(str(p) for p in err.absolute_path) or "<root>"
            out.append(f"{where}: {err.message}")
        return out
