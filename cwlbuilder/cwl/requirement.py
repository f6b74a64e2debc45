from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator, MutableMapping, MutableSequence
from typing import Any

from jinja2 import Template

from cwlbuilder.core.exception import NotFound, ValidationError
from cwlbuilder.core.utils import remove_empty
from cwlbuilder.cwl.expression import Expression, as_expression, escape_literal, js_string
from cwlbuilder.cwl.parameter import check_id
from cwlbuilder.log_handler import logger

CONDA_DOCKERFILE = Template(
    """
FROM continuumio/miniconda3

RUN conda config --add channels r
RUN conda config --add channels bioconda
RUN conda config --add channels conda-forge

RUN conda install -y {{ tools | join(" ") }}
""",
    keep_trailing_newline=True,
)


def _save(value: Any) -> Any:
    if hasattr(value, "save"):
        return value.save()
    elif isinstance(value, str):
        return str(value)
    elif isinstance(value, MutableSequence):
        return [_save(v) for v in value]
    elif isinstance(value, MutableMapping):
        return {k: _save(v) for k, v in value.items()}
    else:
        return value


class Requirement:
    """
    Base class of all CWL requirements and hints.

    Subclasses declare the CWL ``class`` they represent and a ``fields`` table mapping each CWL
    field name to the attribute holding its value. Fields left empty are dropped on save, so a
    requirement without fields saves as ``{"class": ...}``.
    """

    class_name: str = ""
    fields: MutableMapping[str, str] = {}
    min_version: str = "v1.0"

    def __init__(self, **kwargs):
        for attr in self.fields.values():
            setattr(self, attr, as_expression(kwargs.pop(attr, None)))
        if kwargs:
            raise ValidationError(
                f"Unknown fields {sorted(kwargs)} for requirement {self.class_name}"
            )

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Requirement):
            return NotImplemented
        return self.save() == other.save()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._save_fields()!r})"

    @classmethod
    def _load(cls, record: MutableMapping[str, Any]) -> Requirement:
        if unknown := set(record.keys()) - set(cls.fields.keys()) - {"class"}:
            raise ValidationError(
                f"Unknown fields {sorted(unknown)} for requirement {cls.class_name}"
            )
        return cls(**{attr: record.get(field) for field, attr in cls.fields.items()})

    def _save_fields(self) -> MutableMapping[str, Any]:
        return {
            field: _save(getattr(self, attr)) for field, attr in self.fields.items()
        }

    @classmethod
    def load(cls, record: MutableMapping[str, Any]) -> Requirement:
        if "class" not in record:
            raise ValidationError(f"Requirement {dict(record)!r} has no `class` field")
        if (type_ := requirement_classes.get(record["class"])) is None:
            return GenericRequirement(record["class"], dict(record))
        return type_._load(record)

    def merge(self, other: Requirement) -> Requirement:
        return other

    def save(self) -> MutableMapping[str, Any]:
        return {"class": self.class_name} | remove_empty(self._save_fields())


class GenericRequirement(Requirement):
    """A requirement of a class unknown to this package, preserved verbatim."""

    def __init__(self, class_name: str, record: MutableMapping[str, Any]):
        self.class_name: str = class_name
        self.record: MutableMapping[str, Any] = {
            k: v for k, v in record.items() if k != "class"
        }

    def _save_fields(self) -> MutableMapping[str, Any]:
        return dict(self.record)


class DockerRequirement(Requirement):
    class_name = "DockerRequirement"
    fields = {
        "dockerPull": "docker_pull",
        "dockerLoad": "docker_load",
        "dockerFile": "docker_file",
        "dockerImport": "docker_import",
        "dockerImageId": "docker_image_id",
        "dockerOutputDirectory": "docker_output_directory",
    }


class InlineJavascriptRequirement(Requirement):
    class_name = "InlineJavascriptRequirement"
    fields = {"expressionLib": "expression_lib"}

    def __init__(self, expression_lib: MutableSequence[str] | None = None):
        super().__init__(
            expression_lib=list(expression_lib) if expression_lib else None
        )


class SoftwarePackage:
    __slots__ = ("package", "version", "specs")

    def __init__(
        self,
        package: str,
        version: str | MutableSequence[str] | None = None,
        specs: MutableSequence[str] | None = None,
    ):
        self.package: str = package
        self.version: MutableSequence[str] | None = (
            [version] if isinstance(version, str) else version
        )
        self.specs: MutableSequence[str] | None = specs

    @classmethod
    def load(cls, record: MutableMapping[str, Any]) -> SoftwarePackage:
        return cls(
            package=record["package"],
            version=record.get("version"),
            specs=record.get("specs"),
        )

    def save(self) -> MutableMapping[str, Any]:
        return remove_empty(
            {"package": self.package, "version": self.version, "specs": self.specs}
        )


class SoftwareRequirement(Requirement):
    class_name = "SoftwareRequirement"
    fields = {"packages": "packages"}

    def __init__(self, packages: Iterable[SoftwarePackage] | None = None):
        super().__init__(packages=list(packages or []))

    @classmethod
    def _load(cls, record: MutableMapping[str, Any]) -> Requirement:
        packages = record.get("packages", [])
        if isinstance(packages, MutableMapping):
            packages = [
                {"package": k} | (v if isinstance(v, MutableMapping) else {"specs": v})
                for k, v in packages.items()
            ]
        return cls(packages=[SoftwarePackage.load(p) for p in packages])


class Dirent:
    """A file or directory staged in the output directory before the tool runs."""

    __slots__ = ("entry", "entryname", "writable")

    def __init__(
        self,
        entry: str,
        entryname: str | None = None,
        writable: bool = False,
    ):
        if entry is None:
            raise ValidationError("Dirent entries require an `entry`")
        self.entry: str = as_expression(entry)
        self.entryname: str | None = as_expression(entryname)
        self.writable: bool = writable

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Dirent):
            return NotImplemented
        return self.save() == other.save()

    @classmethod
    def load(cls, record: MutableMapping[str, Any]) -> Dirent:
        return cls(
            entry=record.get("entry"),
            entryname=record.get("entryname"),
            writable=record.get("writable", False),
        )

    def save(self) -> MutableMapping[str, Any]:
        return remove_empty(
            {
                "entryname": _save(self.entryname),
                "entry": _save(self.entry),
                "writable": self.writable,
            }
        )


class InitialWorkDirRequirement(Requirement):
    class_name = "InitialWorkDirRequirement"
    fields = {"listing": "listing"}

    def __init__(self, listing: Iterable[Dirent | str] | str | None = None):
        if isinstance(listing, str):
            super().__init__(listing=as_expression(listing))
        else:
            super().__init__(listing=list(listing or []))

    @classmethod
    def _load(cls, record: MutableMapping[str, Any]) -> Requirement:
        listing = record.get("listing", [])
        if isinstance(listing, str):
            return cls(listing=listing)
        return cls(
            listing=[
                Dirent.load(e) if isinstance(e, MutableMapping) else as_expression(e)
                for e in listing
            ]
        )

    def merge(self, other: Requirement) -> Requirement:
        if not isinstance(other, InitialWorkDirRequirement):
            return other
        if not isinstance(self.listing, MutableSequence) or not isinstance(
            other.listing, MutableSequence
        ):
            return other
        names = {
            e.entryname for e in other.listing if isinstance(e, Dirent) and e.entryname
        }
        listing = [
            e
            for e in self.listing
            if not (isinstance(e, Dirent) and e.entryname in names)
        ]
        return InitialWorkDirRequirement(listing=listing + list(other.listing))


class EnvVarRequirement(Requirement):
    class_name = "EnvVarRequirement"
    fields = {"envDef": "env_def"}

    def __init__(self, env_def: MutableMapping[str, str] | None = None):
        super().__init__()
        self.env_def: MutableMapping[str, str] = {
            k: as_expression(v) for k, v in (env_def or {}).items()
        }

    @classmethod
    def _load(cls, record: MutableMapping[str, Any]) -> Requirement:
        env_def = record.get("envDef", {})
        if isinstance(env_def, MutableSequence):
            env_def = {e["envName"]: e["envValue"] for e in env_def}
        else:
            env_def = {
                k: v["envValue"] if isinstance(v, MutableMapping) else v
                for k, v in env_def.items()
            }
        return cls(env_def=env_def)

    def _save_fields(self) -> MutableMapping[str, Any]:
        return {
            "envDef": [
                {"envName": k, "envValue": _save(v)} for k, v in self.env_def.items()
            ]
        }


class ResourceRequirement(Requirement):
    class_name = "ResourceRequirement"
    fields = {
        "coresMin": "cores_min",
        "coresMax": "cores_max",
        "ramMin": "ram_min",
        "ramMax": "ram_max",
        "tmpdirMin": "tmpdir_min",
        "tmpdirMax": "tmpdir_max",
        "outdirMin": "outdir_min",
        "outdirMax": "outdir_max",
    }


class ShellCommandRequirement(Requirement):
    class_name = "ShellCommandRequirement"


class NetworkAccess(Requirement):
    class_name = "NetworkAccess"
    fields = {"networkAccess": "network_access"}
    min_version = "v1.1"

    def __init__(self, network_access: bool | str = True):
        super().__init__(network_access=network_access)


class SubworkflowFeatureRequirement(Requirement):
    class_name = "SubworkflowFeatureRequirement"


class ScatterFeatureRequirement(Requirement):
    class_name = "ScatterFeatureRequirement"


class MultipleInputFeatureRequirement(Requirement):
    class_name = "MultipleInputFeatureRequirement"


class StepInputExpressionRequirement(Requirement):
    class_name = "StepInputExpressionRequirement"


requirement_classes: MutableMapping[str, type[Requirement]] = {
    cls.class_name: cls
    for cls in (
        DockerRequirement,
        EnvVarRequirement,
        InitialWorkDirRequirement,
        InlineJavascriptRequirement,
        MultipleInputFeatureRequirement,
        NetworkAccess,
        ResourceRequirement,
        ScatterFeatureRequirement,
        ShellCommandRequirement,
        SoftwareRequirement,
        StepInputExpressionRequirement,
        SubworkflowFeatureRequirement,
    )
}


class Requirements:
    """
    Requirements (or hints) attached to a process, at most one per CWL class.

    Adding a requirement whose class is already present replaces it, except for classes that
    define an additive merge (``InitialWorkDirRequirement`` appends its listing).
    """

    def __init__(self, requirements: Iterable[Requirement] | None = None):
        self._requirements: MutableMapping[str, Requirement] = {}
        for requirement in requirements or []:
            self.add(requirement)

    def __contains__(self, item: str | type[Requirement]) -> bool:
        return _get_class_name(item) in self._requirements

    def __iter__(self) -> Iterator[Requirement]:
        return iter(self._requirements.values())

    def __len__(self) -> int:
        return len(self._requirements)

    def __repr__(self) -> str:
        return f"Requirements({list(self._requirements.values())!r})"

    def add(self, requirement: Requirement) -> None:
        if not isinstance(requirement, Requirement):
            raise ValidationError(f"Expected a requirement, got {requirement!r}")
        if (current := self._requirements.get(requirement.class_name)) is not None:
            requirement = current.merge(requirement)
            if requirement is not current and logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"Updating {requirement.class_name}")
        self._requirements[requirement.class_name] = requirement

    def copy(self) -> Requirements:
        return Requirements(self._requirements.values())

    def get(self, item: str | type[Requirement]) -> Requirement | None:
        return self._requirements.get(_get_class_name(item))

    def remove(self, item: str | type[Requirement]) -> Requirement:
        if (class_name := _get_class_name(item)) not in self._requirements:
            raise NotFound(f"No requirement of class `{class_name}`")
        return self._requirements.pop(class_name)

    def save(self) -> MutableSequence[MutableMapping[str, Any]]:
        return [r.save() for r in self._requirements.values()]

    def set(self, requirement: Requirement) -> None:
        self._requirements[requirement.class_name] = requirement


def _get_class_name(item: str | type[Requirement] | Requirement) -> str:
    if isinstance(item, str):
        return item
    return item.class_name


def conda_package(
    package: str, source: str = "bioconda", version: str | None = None
) -> SoftwarePackage:
    return SoftwarePackage(
        package=package,
        version=version,
        specs=[f"https://anaconda.org/{source}/{package}"],
    )


def conda_tool(tools: Iterable[str]) -> str:
    return CONDA_DOCKERFILE.render(tools=list(tools))


def require_docker(
    docker: str | None = None,
    load: str | None = None,
    file: str | None = None,
    import_: str | None = None,
    image_id: str | None = None,
    output_dir: str | None = None,
) -> DockerRequirement:
    return DockerRequirement(
        docker_pull=docker,
        docker_load=load,
        docker_file=file,
        docker_import=import_,
        docker_image_id=image_id,
        docker_output_directory=output_dir,
    )


def require_env_var(env: MutableMapping[str, str]) -> EnvVarRequirement:
    return EnvVarRequirement(env_def=env)


def require_initial_work_dir(
    listing: Iterable[Dirent | str],
) -> InitialWorkDirRequirement:
    return InitialWorkDirRequirement(listing=listing)


def require_js(
    expression_lib: MutableSequence[str] | None = None,
) -> InlineJavascriptRequirement:
    return InlineJavascriptRequirement(expression_lib=expression_lib)


def require_manifest(input_id: str, sep: str = "\n") -> InitialWorkDirRequirement:
    """
    Stage a file named after an array-of-File input, listing the path of each of its elements.

    The listing is built at run time by the generated expression, which needs an
    ``InlineJavascriptRequirement`` on the same process.
    """
    check_id(input_id)
    expression = Expression(
        f"${{return inputs.{input_id}.map(function(f){{return f.path;}})"
        f".join({js_string(sep)});}}"
    )
    return InitialWorkDirRequirement(
        listing=[Dirent(entryname=input_id, entry=expression)]
    )


def require_multiple_input() -> MultipleInputFeatureRequirement:
    return MultipleInputFeatureRequirement()


def require_network(network_access: bool = True) -> NetworkAccess:
    return NetworkAccess(network_access=network_access)


def require_resource(
    cores_min: int | str | None = None,
    cores_max: int | str | None = None,
    ram_min: int | str | None = None,
    ram_max: int | str | None = None,
    tmpdir_min: int | str | None = None,
    tmpdir_max: int | str | None = None,
    outdir_min: int | str | None = None,
    outdir_max: int | str | None = None,
) -> ResourceRequirement:
    return ResourceRequirement(
        cores_min=cores_min,
        cores_max=cores_max,
        ram_min=ram_min,
        ram_max=ram_max,
        tmpdir_min=tmpdir_min,
        tmpdir_max=tmpdir_max,
        outdir_min=outdir_min,
        outdir_max=outdir_max,
    )


def require_scatter() -> ScatterFeatureRequirement:
    return ScatterFeatureRequirement()


def require_script(path: str | os.PathLike) -> InitialWorkDirRequirement:
    with open(path) as f:
        text = f.read()
    return InitialWorkDirRequirement(
        listing=[Dirent(entryname=os.path.basename(path), entry=escape_literal(text))]
    )


def require_shell_command() -> ShellCommandRequirement:
    return ShellCommandRequirement()


def require_shell_script(script: str) -> InitialWorkDirRequirement:
    return InitialWorkDirRequirement(
        listing=[Dirent(entryname="script.sh", entry=escape_literal(script))]
    )


def require_software(packages: Iterable[SoftwarePackage]) -> SoftwareRequirement:
    return SoftwareRequirement(packages=packages)


def require_step_input_expression() -> StepInputExpressionRequirement:
    return StepInputExpressionRequirement()


def require_subworkflow() -> SubworkflowFeatureRequirement:
    return SubworkflowFeatureRequirement()


def shell_script(shell: str = "bash", script: str = "script.sh") -> MutableSequence[str]:
    return [shell, script]
