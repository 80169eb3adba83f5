#!/usr/bin/env python

import sys
import os
import io
import contextlib
from typing import Text, List, TextIO, Optional, Iterator, Tuple

from cn_view import common


class Default:
    package = "cn_view"
    help_commands = frozenset({"help", "-help", "--help", "-h"})
    num_indent = 2
    max_width = 78


def _kebab_to_snake(kebab_str: str) -> str:
    """
    Allow passing commands in kebab case by converting to snake case (to match file names)
    """
    return kebab_str.replace('-', '_')


def _snake_to_kebab(snake_str: str) -> str:
    """
    Convert snake-case files to kebab-case for display
    """
    return snake_str.replace('_', '-')


def find_commands(package: str = Default.package) -> Tuple[str, ...]:
    """
    Get the sub-modules of package that can be run as commands, i.e. that have a "main" function
    """
    module = common.dynamic_import(package)
    module_folder = list(module.__path__)[0]
    this_module = os.path.splitext(os.path.basename(__file__))[0]
    candidates = sorted(
        file_name.rsplit(".py", 1)[0] for file_name in os.listdir(module_folder)
        if file_name.endswith(".py") and not file_name.startswith("_")
    )
    return tuple(_find_commands_iter(package, candidates, this_module))


def _find_commands_iter(package: str, candidates: List[str], this_module: str) -> Iterator[str]:
    for sub_module in candidates:
        if sub_module == this_module:
            continue
        try:
            common.dynamic_import(f"{package}.{sub_module}.main")
        except ModuleNotFoundError:
            continue
        yield sub_module


def _get_help_summary(package: str, sub_module: str) -> str:
    submodule_arg_parser = common.dynamic_import(f"{package}.{sub_module}.__parse_arguments")
    string_buffer = io.StringIO()
    with contextlib.redirect_stdout(string_buffer):
        try:
            # noinspection PyUnresolvedReferences
            submodule_arg_parser([sub_module, "--help"])
        except SystemExit:
            pass
    # the help summary is the part of the parsed help preceded and followed by empty lines
    summary_lines = string_buffer.getvalue().split("\n\n", 2)
    return summary_lines[1] if len(summary_lines) >= 2 else summary_lines[0] if summary_lines \
        else "(No help available)"


def _wrap(text: str, indent: str, max_width: int) -> Iterator[str]:
    words = text.split()
    if not words:
        return
    line = indent + words[0]
    for word in words[1:]:
        if len(line + " " + word) <= max_width:
            line += " " + word
        else:
            yield line
            line = indent + word
    yield line


def print_command_help(
        package: str = Default.package,
        commands: Optional[Tuple[str, ...]] = None,
        file_descriptor: Optional[TextIO] = None,
        num_indent: int = Default.num_indent,
        max_width: int = Default.max_width
):
    if file_descriptor is None:
        file_descriptor = sys.stdout
    if commands is None:
        commands = find_commands(package)
    print(f"{_snake_to_kebab(package)} [command] [args...]", file=file_descriptor)
    print("Valid commands are:", file=file_descriptor)
    indent1 = " " * num_indent
    indent2 = " " * (num_indent * 2)
    for command in commands:
        print(f"{indent1}{_snake_to_kebab(command)}:", file=file_descriptor)
        for line in _wrap(_get_help_summary(package, command).strip(), indent2, max_width):
            print(line, file=file_descriptor)
    print("", file=file_descriptor)


def main(argv: Optional[List[Text]] = None, package: str = Default.package):
    """
    Dispatch arguments to appropriate module function, with call to command_line.py removed, so that the dispatched
    command will behave the same as if it had been called directly.
    Args:
        argv: input arguments to command. If called from command-line (usual use case), this will simply be sys.argv
        package: package holding the command modules
    """
    if argv is None:
        argv = sys.argv
    commands = find_commands(package)
    if len(argv) < 2:
        print("No command specified.", file=sys.stderr)
        print_command_help(package=package, commands=commands, file_descriptor=sys.stderr)
        sys.exit(1)
    command = argv[1]
    if command in Default.help_commands:
        print_command_help(package=package, commands=commands)
        return None
    command = _kebab_to_snake(command)
    if command not in commands:
        print(f"Bad command: {argv[1]}", file=sys.stderr)
        print_command_help(package=package, commands=commands, file_descriptor=sys.stderr)
        sys.exit(1)
    return common.dynamic_import(f"{package}.{command}.main")(argv[1:])


if __name__ == "__main__":
    main()
