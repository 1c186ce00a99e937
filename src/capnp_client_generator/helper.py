"""Helper functionality that is used in other modules of this package."""

from __future__ import annotations

import keyword
import re
from collections.abc import Sequence

from capnp.lib.capnp import _EnumSchema, _InterfaceSchema, _ParsedSchema, _StructSchema

INDENT = "    "

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def sanitize_name(name: str) -> str:
    """Sanitize a name to avoid Python keywords.

    If the name is a Python keyword, append an underscore.
    E.g. 'lambda' becomes 'lambda_', 'class' becomes 'class_'.

    Args:
        name (str): The original name.

    Returns:
        str: The sanitized name.
    """
    if keyword.iskeyword(name):
        return f"{name}_"
    return name


def snake_case(name: str) -> str:
    """Convert a capnp style camelCase name to a snake_case Python identifier.

    E.g. 'pageSize' becomes 'page_size', 'getHTTPResponse' becomes 'get_http_response'.
    Dots and dashes become underscores, keywords get a trailing underscore.

    Args:
        name (str): The original name.

    Returns:
        str: The snake_case name.
    """
    name = re.sub(r"[.\-\s]+", "_", name)
    name = _CAMEL_BOUNDARY.sub("_", name).lower()
    return sanitize_name(name)


def pascal_case(name: str) -> str:
    """Convert a name to PascalCase, e.g. 'library.Shelf' becomes 'LibraryShelf'."""
    parts = re.split(r"[^A-Za-z0-9]+", name)
    return "".join(p[:1].upper() + p[1:] for p in parts if p)


def replace_capnp_suffix(original: str) -> str:
    """If found, replaces the .capnp suffix in a string with _capnp and converts hyphens to underscores.

    For example, `some-module.capnp` becomes `some_module_capnp`.

    Args:
        original (str): The string to replace the suffix in.

    Returns:
        str: The string with the replaced suffix and hyphens converted to underscores.
    """
    result = original
    if result.endswith(".capnp"):
        result = result.replace(".capnp", "_capnp")

    return result.replace("-", "_")


def join_parameters(parameters: Sequence[str] | None) -> str:
    """Joins parameters by means of ', '.

    Args:
        parameters (Sequence[str] | None): The parameters to join.

    Returns:
        str: The joined parameters.
    """
    if parameters:
        return ", ".join(str(p) for p in parameters if p)

    else:
        return ""


def new_function(
    name: str,
    parameters: Sequence[str] | None = None,
    return_type: str | None = None,
) -> str:
    """Create the signature line of a function.

    Args:
        name (str): The function name.
        parameters (Sequence[str] | None, optional): The function parameters, if any. Defaults to None.
        return_type (str | None, optional): The function's return type. Defaults to None.

    Returns:
        str: The function signature, ending in a colon.
    """
    if return_type is None:
        return_type = "None"

    arguments = join_parameters(parameters)
    return f"def {name}({arguments}) -> {return_type}:"


def new_decorator(name: str, parameters: Sequence[str] | None = None) -> str:
    """Create a new decorator.

    Args:
        name (str): The name of the decorator.
        parameters (Sequence[str] | None, optional): The parameters (args, kwargs) of the decorator,
            if any. Defaults to None.

    Returns:
        str: The decorator string.
    """
    if parameters:
        return f"@{name}({join_parameters(parameters)})"

    else:
        return f"@{name}"


def new_class_declaration(name: str, parameters: Sequence[str] | None = None) -> str:
    """Creates a string for declaring a class.

    If no parameters are provided, the output is just 'class SomeClass:'.

    Args:
        name (str): The class name.
        parameters (Sequence[str] | None, optional):
            A list of parameters that are part of the class declaration. Defaults to None.

    Returns:
        str: The class declaration.
    """
    if parameters:
        return f"class {name}({join_parameters(parameters)}):"
    else:
        return f"class {name}:"


def indent(lines: Sequence[str], level: int = 1) -> list[str]:
    """Indent every non-empty line by `level` levels."""
    prefix = INDENT * level
    return [f"{prefix}{line}" if line else line for line in lines]


def get_display_name(schema: _ParsedSchema | _StructSchema | _EnumSchema | _InterfaceSchema) -> str:
    """Extract the display name from a schema.

    Args:
        schema (Any): The schema to get the display name from.

    Returns:
        str: The display name of the schema.
    """
    return schema.node.displayName[schema.node.displayNamePrefixLength :]
