from __future__ import annotations

import json
from typing import Any

import yaml

from dbschema_sync.models import VOLATILE_FIELDS, DatabaseSchemaMetadata, InstanceMetadata


def _strip_empty(obj: Any) -> Any:
    """Recursively remove None values and empty dicts/lists.

    Preserves False, 0, and empty strings as intentional values.
    """
    if isinstance(obj, dict):
        result = {}
        for k, v in obj.items():
            stripped = _strip_empty(v)
            if stripped is None:
                continue
            if isinstance(stripped, (dict, list)) and len(stripped) == 0:
                continue
            result[k] = stripped
        return result
    if isinstance(obj, list):
        return [_strip_empty(item) for item in obj]
    return obj


def _strip_volatile(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _strip_volatile(v) for k, v in obj.items() if k not in VOLATILE_FIELDS}
    if isinstance(obj, list):
        return [_strip_volatile(item) for item in obj]
    return obj


def _dump(model: DatabaseSchemaMetadata | InstanceMetadata, exclude_volatile: bool) -> dict:
    data = model.model_dump(mode="json")
    if exclude_volatile:
        data = _strip_volatile(data)
    return _strip_empty(data)


def _to_yaml(data: dict) -> str:
    return yaml.dump(
        data,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def database_to_yaml(database: DatabaseSchemaMetadata, exclude_volatile: bool = False) -> str:
    return _to_yaml(_dump(database, exclude_volatile))


def database_from_yaml(text: str) -> DatabaseSchemaMetadata:
    data = yaml.safe_load(text)
    return DatabaseSchemaMetadata.model_validate(data)


def instance_to_yaml(instance: InstanceMetadata, exclude_volatile: bool = False) -> str:
    return _to_yaml(_dump(instance, exclude_volatile))


def instance_from_yaml(text: str) -> InstanceMetadata:
    data = yaml.safe_load(text)
    return InstanceMetadata.model_validate(data)


def database_to_json(database: DatabaseSchemaMetadata, exclude_volatile: bool = False) -> str:
    return json.dumps(_dump(database, exclude_volatile), indent=2, ensure_ascii=False)


def database_from_json(text: str) -> DatabaseSchemaMetadata:
    return DatabaseSchemaMetadata.model_validate_json(text)
