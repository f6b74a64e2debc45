from __future__ import annotations

import json
import posixpath
from collections.abc import MutableMapping
from typing import Any, Protocol

from referencing import Registry, Resource

from cwlbuilder.core.exception import ValidationError


class SchemaEntity(Protocol):
    @classmethod
    def get_schema(cls) -> str: ...


class Config:
    __slots__ = ("type", "config")

    def __init__(self, type: str, config: MutableMapping[str, Any] | None = None) -> None:
        self.type: str = type
        self.config: MutableMapping[str, Any] = config or {}

    def __repr__(self) -> str:
        return f"Config(type={self.type!r}, config={self.config!r})"


class Schema:
    def __init__(self, configs: MutableMapping[str, str]):
        self.configs: MutableMapping[str, str] = configs
        self.registry: Registry = Registry()

    def add_schema(self, schema: str, embed: bool = False) -> Resource:
        resource = Resource.from_contents(json.loads(schema))
        self.registry = resource @ self.registry
        entity_schema = resource.contents
        if embed:
            for config_id in self.configs.values():
                config = self.registry.contents(config_id)
                config["$defs"][entity_schema["$id"]] = entity_schema
        return resource

    def dump(self, version: str, pretty: bool = False) -> str:
        output = self.get_config(version).contents
        return json.dumps(output, indent=4) if pretty else json.dumps(output)

    def get_config(self, version: str) -> Resource:
        if version not in self.configs:
            raise ValidationError(
                f"Version {version} is unsupported. The `version` clause should be equal to `v1.0`."
            )
        return self.registry[self.configs[version]]

    def inject_ext(
        self,
        classes: MutableMapping[str, type[SchemaEntity]],
        definition_name: str,
    ) -> None:
        for name, entity in classes.items():
            if entity_schema := entity.get_schema():
                entity_schema = self.add_schema(entity_schema, embed=True).contents
                for config_id in self.configs.values():
                    config = self.registry.contents(config_id)
                    definition = config["$defs"]
                    for el in definition_name.split(posixpath.sep):
                        definition = definition[el]
                    definition["properties"]["type"].setdefault("enum", []).append(name)
                    definition.setdefault("allOf", []).append(
                        {
                            "if": {"properties": {"type": {"const": name}}},
                            "then": {
                                "properties": {
                                    "config": {
                                        "type": "object",
                                        "title": "Configuration",
                                        "$ref": entity_schema["$id"],
                                    }
                                }
                            },
                        }
                    )
