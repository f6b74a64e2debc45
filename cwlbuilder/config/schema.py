from importlib.resources import files

from cwlbuilder.core.config import Schema
from cwlbuilder.runner import backend_classes


class CWLBuilderSchema(Schema):
    def __init__(self) -> None:
        super().__init__({"v1.0": "urn:cwlbuilder:config:v1.0:config_schema.json"})
        for version in self.configs.keys():
            self.add_schema(
                schema=files(__package__)
                .joinpath("schemas")
                .joinpath(version)
                .joinpath("config_schema.json")
                .read_text("utf-8")
            )
        self.inject_ext(backend_classes, "backend")
        self.registry = self.registry.crawl()
