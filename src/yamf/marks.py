"""
Declarative mark metadata for checks.

Metadata is registered when check definitions are loaded, either by decorating
Python check functions:

    @marking(marks=2, name="adds two numbers")
    @manual_marking_required(instructions="check the code style")
    def test_add():
        ...

or, for checks written in another language, from a YAML marking scheme:

    checks:
      nz.ac.wgtn.example.CalculatorTests::testAdd:
        marks: 2
        name: adds two numbers
        manual_marking:
          instructions: check the code style

The registry is queried by qualified check name (Class::method) once a check
has finished.
"""

import json
import os
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import jsonschema
import structlog
import yaml

from yamf.exceptions import MarkingSchemeError

log = structlog.get_logger("yamf.marks")

MARKING_SCHEME_SCHEMA = os.path.join(os.path.dirname(__file__), "config_defaults", "marking_scheme_schema.json")

_MARKING_ATTR = "__yamf_marking__"
_MANUAL_MARKING_ATTR = "__yamf_manual_marking__"


@dataclass(frozen=True)
class MarkMetadata:
    marks: float
    name: str
    manual_marking_required: bool = False
    manual_marking_instructions: Optional[str] = None

    def __post_init__(self) -> None:
        if self.marks < 0:
            raise ValueError("The marks of a check must be >= 0")
        if self.manual_marking_instructions is not None and not self.manual_marking_required:
            raise ValueError("Manual marking instructions require manual marking")


class MarkRegistry:
    """ Thread safe mapping of qualified check names to their mark metadata """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._marks: Dict[str, MarkMetadata] = {}

    def register(self, qualified_name: str, metadata: MarkMetadata) -> None:
        with self._lock:
            previous = self._marks.get(qualified_name)
            self._marks[qualified_name] = metadata
        if previous is not None and previous != metadata:
            log.debug("mark metadata replaced", check=qualified_name)

    def lookup(self, qualified_name: str) -> Optional[MarkMetadata]:
        with self._lock:
            return self._marks.get(qualified_name)

    def clear(self) -> None:
        with self._lock:
            self._marks.clear()

    def __contains__(self, qualified_name: object) -> bool:
        with self._lock:
            return qualified_name in self._marks

    def __len__(self) -> int:
        with self._lock:
            return len(self._marks)


default_registry = MarkRegistry()


def check_identity(func: Callable) -> str:
    """
    Return the qualified name of a check function: module.Class::method for
    methods, module::function for plain functions.

    >>> check_identity(CalculatorTests.test_add)  # in module tests.calc
    'tests.calc.CalculatorTests::test_add'
    """
    owner, _sep, name = func.__qualname__.rpartition(".")
    owner = owner.replace(".<locals>", "")
    if owner:
        return f"{func.__module__}.{owner}::{name}"
    return f"{func.__module__}::{name}"


def _register_function(func: Callable) -> None:
    """ (Re)build the metadata of func from its marking attributes and register it """
    marking_args = getattr(func, _MARKING_ATTR, None)
    if marking_args is None:
        return
    marks, name = marking_args
    manual = getattr(func, _MANUAL_MARKING_ATTR, None)
    metadata = MarkMetadata(
        marks=marks,
        name=name or func.__name__,
        manual_marking_required=manual is not None,
        manual_marking_instructions=manual,
    )
    default_registry.register(check_identity(func), metadata)


def marking(marks: float, name: Optional[str] = None) -> Callable[[Callable], Callable]:
    """
    Decorator declaring the marks a check is worth. The name defaults to the
    name of the decorated function.
    """

    def decorator(func: Callable) -> Callable:
        setattr(func, _MARKING_ATTR, (float(marks), name))
        _register_function(func)
        return func

    return decorator


def manual_marking_required(instructions: str = "") -> Callable[[Callable], Callable]:
    """
    Decorator declaring that the outcome of a check must be reviewed by a marker,
    following instructions.
    """

    def decorator(func: Callable) -> Callable:
        setattr(func, _MANUAL_MARKING_ATTR, instructions)
        _register_function(func)
        return func

    return decorator


def marking_scheme_schema() -> Dict:
    with open(MARKING_SCHEME_SCHEMA) as f:
        return json.load(f)


def load_marking_scheme(path: str, registry: Optional[MarkRegistry] = None) -> MarkRegistry:
    """
    Register the mark metadata of every check in the YAML marking scheme at path
    with registry (a new registry if None) and return the registry.

    Raise a MarkingSchemeError if the file cannot be read or is not a valid scheme.
    """
    registry = MarkRegistry() if registry is None else registry
    try:
        with open(path) as f:
            scheme = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise MarkingSchemeError(f"cannot read marking scheme {path}: {e}") from e
    try:
        jsonschema.Draft7Validator(marking_scheme_schema()).validate(scheme)
    except jsonschema.ValidationError as e:
        raise MarkingSchemeError(f"invalid marking scheme {path}: {e.message}") from e

    for qualified_name, data in scheme["checks"].items():
        manual = data.get("manual_marking")
        registry.register(
            qualified_name,
            MarkMetadata(
                marks=float(data["marks"]),
                name=data.get("name") or qualified_name.rpartition("::")[2],
                manual_marking_required=manual is not None,
                manual_marking_instructions=manual.get("instructions", "") if manual is not None else None,
            ),
        )
    log.info("marking scheme loaded", path=path, checks=len(scheme["checks"]))
    return registry
