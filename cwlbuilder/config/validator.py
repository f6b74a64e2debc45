from __future__ import annotations

from collections.abc import Iterable, MutableMapping
from typing import Any

from jsonschema import ValidationError as SchemaValidationError
from jsonschema.validators import validator_for
from ruamel.yaml import YAML

from cwlbuilder.config.schema import CWLBuilderSchema
from cwlbuilder.core.exception import ValidationError


def handle_errors(errors: Iterable[SchemaValidationError]) -> None:
    if not (errors := list(sorted(errors, key=str))):
        return
    raise ValidationError(
        "The cwlbuilder configuration is invalid because:\n{error_msgs}".format(
            error_msgs="\n".join([f" - {err.message}" for err in errors])
        )
    )


class ConfigValidator:
    def __init__(self) -> None:
        self.schema: CWLBuilderSchema = CWLBuilderSchema()
        self.yaml = YAML(typ="safe")

    def validate_file(self, config_file: str) -> MutableMapping[str, Any]:
        with open(config_file) as f:
            config = self.yaml.load(f)
        return self.validate(config or {})

    def validate(self, config: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        if "version" not in config:
            raise ValidationError(
                "The `version` clause is mandatory and should be equal to `v1.0`."
            )
        schema = self.schema.get_config(config["version"]).contents
        cls = validator_for(schema)
        validator = cls(schema, registry=self.schema.registry)
        handle_errors(validator.iter_errors(config))
        return config
