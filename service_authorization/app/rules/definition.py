"""
Matching model definition.

The definition is a small INI document in the Casbin model format. It is
loaded once at startup and checked against the one matching semantics the
engine implements: role based, domain scoped, allow only. Changing the
expression changes authorization outcomes, so anything other than the
supported definition is rejected instead of being silently ignored.
"""

import configparser
from dataclasses import dataclass
from importlib import resources
from typing import Dict, Optional, Tuple

from shared.errors import ModelLoadError


REQUEST_FIELDS = ("sub", "dom", "obj", "act")
POLICY_FIELDS = ("sub", "dom", "obj", "act")
ROLE_DEFINITION = "_, _, _"
POLICY_EFFECT = "some(where (p.eft == allow))"
MATCHER = "g(r.sub, p.sub, r.dom) && r.dom == p.dom && r.obj == p.obj && r.act == p.act"

_SECTIONS = {
    "request_definition": "r",
    "policy_definition": "p",
    "role_definition": "g",
    "policy_effect": "e",
    "matchers": "m",
}


@dataclass(frozen=True)
class ModelDefinition:
    """Parsed matching model definition."""
    request_fields: Tuple[str, ...]
    policy_fields: Tuple[str, ...]
    role_definition: str
    policy_effect: str
    matcher: str

    def sections(self) -> Dict[str, str]:
        return {
            "r": ", ".join(self.request_fields),
            "p": ", ".join(self.policy_fields),
            "g": self.role_definition,
            "e": self.policy_effect,
            "m": self.matcher,
        }


def _squash(value: str) -> str:
    return "".join(value.split())


def _fields(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def parse_model_definition(content: str) -> ModelDefinition:
    """Parse and validate a model definition document."""
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read_string(content)
    except configparser.Error as e:
        raise ModelLoadError("failed to parse authorization model", {"error": str(e)}) from e

    values: Dict[str, str] = {}
    for section, key in _SECTIONS.items():
        if not parser.has_option(section, key):
            raise ModelLoadError(
                f"authorization model is missing '{key}' in section [{section}]",
                {"section": section, "key": key}
            )
        values[key] = " ".join(parser.get(section, key).split())

    definition = ModelDefinition(
        request_fields=_fields(values["r"]),
        policy_fields=_fields(values["p"]),
        role_definition=values["g"],
        policy_effect=values["e"],
        matcher=values["m"],
    )

    checks = [
        ("r", definition.request_fields == REQUEST_FIELDS),
        ("p", definition.policy_fields == POLICY_FIELDS),
        ("g", _squash(definition.role_definition) == _squash(ROLE_DEFINITION)),
        ("e", _squash(definition.policy_effect) == _squash(POLICY_EFFECT)),
        ("m", _squash(definition.matcher) == _squash(MATCHER)),
    ]
    for key, supported in checks:
        if not supported:
            raise ModelLoadError(
                f"unsupported authorization model definition for '{key}'",
                {"key": key, "value": values[key]}
            )

    return definition


def load_model_definition(path: Optional[str] = None) -> ModelDefinition:
    """Load the model definition from ``path`` or the bundled ``model.conf``."""
    try:
        if path is None:
            content = resources.files(__package__).joinpath("model.conf").read_text(encoding="utf-8")
        else:
            with open(path, encoding="utf-8") as f:
                content = f.read()
    except OSError as e:
        raise ModelLoadError("failed to read authorization model", {"path": path, "error": str(e)}) from e

    return parse_model_definition(content)
