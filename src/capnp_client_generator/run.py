"""Top-level module for client generation."""

from __future__ import annotations

import argparse
import glob
import logging
import os.path
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from capnp_client_generator.config import GeneratorConfig, load_config
from capnp_client_generator.generator import Diagnostic, generate
from capnp_client_generator.loader import load_schema
from capnp_client_generator.writer import ClientWriter, TestWriter

logger = logging.getLogger(__name__)

PY_SUFFIX = ".py"
CLIENT_MODULE_SUFFIX = "_client"
TEST_MODULE_PREFIX = "test_"


@dataclass
class RunResult:
    """What a generator run produced."""

    written: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


def format_outputs(raw_input: str) -> str:
    """Formats raw input using ruff.

    Args:
        raw_input (str): The unformatted input.

    Returns:
        str: The formatted outputs, or the raw input if ruff is not available or fails.
    """
    try:
        with tempfile.NamedTemporaryFile(mode="w", suffix=PY_SUFFIX, delete=False, encoding="utf-8") as f:
            temp_path = Path(f.name)
            f.write(raw_input)

        try:
            # Sort imports first, then format.
            subprocess.run(
                ["ruff", "check", "--fix", "--select", "I", str(temp_path)],
                capture_output=True,
                check=False,
            )
            subprocess.run(
                ["ruff", "format", "--line-length", "120", str(temp_path)],
                capture_output=True,
                check=True,
            )
            return temp_path.read_text(encoding="utf-8")

        finally:
            temp_path.unlink(missing_ok=True)

    except FileNotFoundError:
        logger.warning("ruff not found, writing unformatted outputs.")
        return raw_input
    except subprocess.CalledProcessError as e:
        logger.warning(f"Ruff formatting failed: {e}")
        logger.warning(f"Stderr: {e.stderr.decode('utf-8', errors='replace')}")
        return raw_input


def find_schema_files(
    paths: list[str],
    excludes: list[str],
    root_directory: str,
    recursive: bool = False,
) -> list[str]:
    """Find the `*.capnp` files that match the given paths, except for excluded ones.

    Args:
        paths (list[str]): Files, directories or glob expressions, relative to the root directory.
        excludes (list[str]): Files or glob expressions to exclude.
        root_directory (str): The directory that paths are relative to.
        recursive (bool, optional): Whether directories and `**` globs are searched recursively.
            Defaults to False.

    Returns:
        list[str]: The sorted schema files.
    """
    excluded_paths: set[str] = set()
    for exclude in excludes:
        exclude_path = os.path.join(root_directory, exclude)
        if os.path.isfile(exclude_path):
            excluded_paths.add(exclude_path)
        else:
            excluded_paths = excluded_paths.union(glob.glob(exclude_path, recursive=recursive))

    search_paths: set[str] = set()
    for path in paths:
        search_path = os.path.join(root_directory, path)

        if recursive and os.path.isdir(search_path):
            for root, _, files in os.walk(search_path):
                for file in files:
                    if file.endswith(".capnp"):
                        search_paths.add(os.path.join(root, file))
        elif os.path.isdir(search_path):
            for file in os.listdir(search_path):
                file_path = os.path.join(search_path, file)
                if os.path.isfile(file_path) and file.endswith(".capnp"):
                    search_paths.add(file_path)
        else:
            search_paths = search_paths.union(glob.glob(search_path, recursive=recursive))

    excluded_paths = {os.path.normpath(p) for p in excluded_paths}
    return sorted(p for p in map(os.path.normpath, search_paths) if p not in excluded_paths)


def generate_client(
    path: str,
    output_directory: str,
    config: GeneratorConfig,
    import_paths: list[str],
    with_tests: bool = True,
) -> RunResult:
    """Entry-point for generating a client module (and its tests) from a schema file.

    Args:
        path (str): The schema file.
        output_directory (str): Where the generated modules are written.
        config (GeneratorConfig): The generator configuration.
        import_paths (list[str]): Additional import paths for resolving absolute imports.
        with_tests (bool, optional): Whether a test module is written as well. Defaults to True.

    Returns:
        RunResult: The written files and the diagnostics of skipped methods.
    """
    loaded = load_schema(path, import_paths)
    result = RunResult()
    if not loaded.services:
        logger.info(f"No interfaces in {path}, nothing to generate.")
        return result

    generations = generate(loaded.services, loaded.schema, config)
    for generation in generations:
        result.diagnostics.extend(generation.diagnostics)

    source_name = os.path.basename(path)
    client_module = f"{loaded.module_name}{CLIENT_MODULE_SUFFIX}"

    client_writer = ClientWriter(source_name)
    test_writer = TestWriter(source_name, client_module)
    for generation in generations:
        client_writer.add_service(generation)
        test_writer.add_service(generation)

    os.makedirs(output_directory, exist_ok=True)
    outputs = [(client_module, client_writer.dumps())]
    if with_tests:
        outputs.append((f"{TEST_MODULE_PREFIX}{client_module}", test_writer.dumps()))

    for module_name, raw_output in outputs:
        output_path = os.path.join(output_directory, f"{module_name}{PY_SUFFIX}")
        with open(output_path, "w", encoding="utf8") as f:
            f.write(format_outputs(raw_output))
        logger.info(f"Wrote {output_path}")
        result.written.append(output_path)

    return result


def run(args: argparse.Namespace, root_directory: str) -> RunResult:
    """Run the client generator on a set of paths that point to *.capnp schemas.

    Uses `generate_client` on each input file.

    Args:
        args (argparse.Namespace): The arguments that were passed when calling the client generator.
        root_directory (str): The directory, from which the generator is executed.

    Returns:
        RunResult: The written files and the diagnostics of all schema files.
    """
    output_dir: str = getattr(args, "output_dir", "")
    import_paths: list[str] = getattr(args, "import_paths", [])
    config_path: str = getattr(args, "config", "")
    with_tests = not getattr(args, "no_tests", False)

    config = load_config(os.path.join(root_directory, config_path)) if config_path else GeneratorConfig()
    absolute_import_paths = [os.path.join(root_directory, p) for p in import_paths]

    result = RunResult()
    for path in find_schema_files(args.paths, args.excludes, root_directory, args.recursive):
        output_directory = os.path.join(root_directory, output_dir) if output_dir else os.path.dirname(path)
        file_result = generate_client(path, output_directory, config, absolute_import_paths, with_tests)
        result.written.extend(file_result.written)
        result.diagnostics.extend(file_result.diagnostics)

    logger.info(f"Generated {len(result.written)} file(s), skipped {len(result.diagnostics)} method(s).")
    return result
