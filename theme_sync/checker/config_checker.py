"""Validation of Tienda Nube / Nuvemshop theme configuration files.

ConfigChecker inspects <theme>/config/*.txt and *.json for:
- Valid JSON syntax and data.json structure
- Tab-only indentation (Tienda Nube rejects space indentation)
- Unique name fields across all files
- A defaults.txt entry for every name field
- File-specific structure rules (settings, sections, translations)
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import click

logger = logging.getLogger("theme_sync.checker")

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

REQUIRED_LANGUAGES = ["es", "pt", "en", "es_mx"]

MAX_JSON_SIZE = 100_000
MAX_TXT_SIZE = 500_000
MAX_JSON_DEPTH = 5
MAX_TAB_LEVELS = 5

SPACE_INDENT_MESSAGE = (
    "CRITICAL: Indentation must use tabs, not spaces. "
    "Tienda Nube requires tab indentation."
)
MIXED_INDENT_MESSAGE = (
    "CRITICAL: Mixed tabs and spaces detected. Use tabs only for indentation."
)

_NAME_LINE = re.compile(r"^name\s*=\s*(.+)$")
_LANGUAGE_LINE = re.compile(r'^(es|pt|en|es_mx)\s+".*"$')
_LEADING_TABS = re.compile(r"^\t*")


@dataclass
class ValidationIssue:
    """One problem found in a configuration file."""
    file: str
    message: str
    severity: str = SEVERITY_ERROR
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass
class ValidationResults:
    """Outcome of a configuration check."""
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def summary(self) -> Dict[str, int]:
        return {"total_errors": len(self.errors), "total_warnings": len(self.warnings)}


def _max_depth(value: Any, current: int = 0) -> int:
    """Nesting depth of containers; scalars and empty containers add nothing."""
    if isinstance(value, dict):
        children = list(value.values())
    elif isinstance(value, list):
        children = value
    else:
        return current

    deepest = current
    for child in children:
        deepest = max(deepest, _max_depth(child, current + 1))
    return deepest


def _is_section_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not line.startswith("\t") and "=" not in stripped


class ConfigChecker:
    """Checks the config directory of a theme. Reusable across check() calls."""

    def __init__(self):
        self._errors: List[ValidationIssue] = []
        self._warnings: List[ValidationIssue] = []
        # name value -> (file, line) of its first occurrence
        self._names: Dict[str, Tuple[str, int]] = {}
        # defaults.txt key -> (value, line)
        self._defaults: Dict[str, Tuple[str, int]] = {}

    def _error(self, file: str, message: str, line: Optional[int] = None,
               column: Optional[int] = None) -> None:
        self._errors.append(ValidationIssue(file, message, SEVERITY_ERROR, line, column))

    def _warning(self, file: str, message: str, line: Optional[int] = None) -> None:
        self._warnings.append(ValidationIssue(file, message, SEVERITY_WARNING, line))

    def check(self, theme_path: Union[str, Path] = "./theme") -> ValidationResults:
        """
        Run every check against <theme_path>/config.

        Args:
            theme_path: Theme directory

        Returns:
            ValidationResults (success is False when any error was found)
        """
        self._errors = []
        self._warnings = []
        self._names = {}
        self._defaults = {}

        config_path = Path(theme_path) / "config"
        logger.debug(f"Checking configuration in {config_path}")

        if not config_path.is_dir():
            self._error("config/", f"Config directory not found. Expected at: {config_path}")
            return self.get_results()

        try:
            files = sorted(
                p.name for p in config_path.iterdir()
                if p.is_file() and p.suffix in (".txt", ".json")
            )
        except OSError as e:
            self._error("config/", f"Cannot read config directory: {e}")
            return self.get_results()

        if not files:
            self._warning("config/", "No configuration files found in config directory")
            return self.get_results()

        if "defaults.txt" in files:
            self._load_defaults(config_path / "defaults.txt")

        for name in files:
            self._check_file(config_path / name, name)

        self._validate_name_correspondence()
        return self.get_results()

    def get_results(self) -> ValidationResults:
        return ValidationResults(errors=list(self._errors), warnings=list(self._warnings))

    def _check_file(self, file_path: Path, file_name: str) -> None:
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self._error(file_name, f"Cannot read file: {e}")
            return

        if not content.strip():
            self._error(file_name, "File is empty")
            return

        if file_name.endswith(".json"):
            self._validate_json_file(content, file_name)
        else:
            self._validate_txt_file(content, file_name)

    def _load_defaults(self, file_path: Path) -> None:
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self._error("defaults.txt", f"Cannot read defaults.txt: {e}")
            return

        for index, line in enumerate(content.split("\n"), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, value = stripped.split("=", 1)
            if key.strip():
                self._defaults[key.strip()] = (value.strip(), index)

    def _validate_json_file(self, content: str, file_name: str) -> None:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            self._error(
                file_name,
                f"Invalid JSON syntax: {e.msg}",
                line=e.lineno,
                column=e.colno,
            )
            return

        if file_name == "data.json":
            self._validate_data_json(data, file_name)

        compact = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        if len(compact) > MAX_JSON_SIZE:
            self._warning(
                file_name,
                "File is very large (>100KB). Consider optimizing your configuration.",
            )

        depth = _max_depth(data)
        if depth > MAX_JSON_DEPTH:
            self._warning(
                file_name,
                f"Configuration has deep nesting ({depth} levels). "
                f"Consider flattening the structure.",
            )

    def _validate_data_json(self, data: Any, file_name: str) -> None:
        if not isinstance(data, dict):
            self._error(file_name, "data.json must be a JSON object")
            return
        if not data.get("preview"):
            self._warning(file_name, "Missing 'preview' section for real-time color updates")

    def _validate_txt_file(self, content: str, file_name: str) -> None:
        lines = content.split("\n")
        self._validate_indentation(lines, file_name)
        self._collect_names(lines, file_name)

        if file_name == "settings.txt":
            if not any(_is_section_line(line) for line in lines):
                self._warning(
                    file_name,
                    "No main sections found. Settings should be organized in sections.",
                )
        elif file_name == "sections.txt":
            if not any(_is_section_line(line) for line in lines):
                self._error(
                    file_name,
                    "No product sections defined. At least one section is required.",
                )
        elif file_name == "translations.txt":
            self._validate_translations(lines, file_name)
        else:
            self._validate_generic(content, lines, file_name)

    def _validate_indentation(self, lines: List[str], file_name: str) -> None:
        for index, line in enumerate(lines, start=1):
            if line.startswith(" "):
                self._error(file_name, SPACE_INDENT_MESSAGE, line=index)
            elif "\t " in line or " \t" in line:
                self._error(file_name, MIXED_INDENT_MESSAGE, line=index)

    def _collect_names(self, lines: List[str], file_name: str) -> None:
        seen_in_file = set()
        for index, line in enumerate(lines, start=1):
            match = _NAME_LINE.match(line.strip())
            if not match:
                continue
            name = match.group(1).strip()

            if name in seen_in_file:
                self._error(
                    file_name,
                    f'Duplicate name field: "{name}" already exists in this file',
                    line=index,
                )
                continue
            seen_in_file.add(name)

            if name in self._names:
                other_file, other_line = self._names[name]
                self._error(
                    file_name,
                    f'Duplicate name field: "{name}" already exists in '
                    f'{other_file} at line {other_line}',
                    line=index,
                )
            else:
                self._names[name] = (file_name, index)

    def _validate_translations(self, lines: List[str], file_name: str) -> None:
        found = set()
        for line in lines:
            match = _LANGUAGE_LINE.match(line.strip())
            if match:
                found.add(match.group(1))
        for language in REQUIRED_LANGUAGES:
            if language not in found:
                self._warning(file_name, f"Missing translations for language: {language}")

    def _validate_generic(self, content: str, lines: List[str], file_name: str) -> None:
        if len(content) > MAX_TXT_SIZE:
            self._warning(
                file_name,
                "File is very large (>500KB). Consider optimizing your configuration.",
            )
        for index, line in enumerate(lines, start=1):
            tabs = len(_LEADING_TABS.match(line).group(0))
            if tabs > MAX_TAB_LEVELS:
                self._warning(
                    file_name,
                    f"Excessive nesting ({tabs} levels). Consider flattening the structure.",
                    line=index,
                )

    def _validate_name_correspondence(self) -> None:
        for name, (file_name, line) in self._names.items():
            if name not in self._defaults:
                self._error(
                    file_name,
                    f'Name field "{name}" has no corresponding value in defaults.txt',
                    line=line,
                )
        for name in self._defaults:
            if name not in self._names:
                self._warning(
                    "defaults.txt",
                    f'Default value "{name}" is not used in any configuration file',
                )


def print_results(results: ValidationResults) -> None:
    """Print a colored report of results."""
    rule = "=" * 60
    click.echo(f"\n{rule}\nConfiguration Check Results\n{rule}\n")

    if not results.errors and not results.warnings:
        click.echo(click.style("All configuration files are valid!", fg="green"))
        return

    if results.errors:
        click.echo(click.style(f"\nErrors ({len(results.errors)}):\n", fg="red", bold=True))
        for index, issue in enumerate(results.errors, start=1):
            click.echo(f"{index}. {issue.file}")
            if issue.line is not None and issue.column is not None:
                click.echo(f"   Line {issue.line}, Column {issue.column}")
            elif issue.line is not None:
                click.echo(f"   Line {issue.line}")
            click.echo(f"   {issue.message}\n")

    if results.warnings:
        click.echo(click.style(f"\nWarnings ({len(results.warnings)}):\n", fg="yellow", bold=True))
        for index, issue in enumerate(results.warnings, start=1):
            click.echo(f"{index}. {issue.file}")
            click.echo(f"   {issue.message}\n")

    summary = results.summary
    click.echo(rule)
    click.echo(
        f"Summary: {summary['total_errors']} errors, "
        f"{summary['total_warnings']} warnings"
    )
    click.echo(f"{rule}\n")

    if results.errors:
        click.echo(click.style(
            "Configuration check failed. Please fix the errors above.", fg="red"
        ))
    else:
        click.echo(click.style(
            "No errors found, but there are some warnings to review.", fg="green"
        ))


def run_config_check(theme_path: Union[str, Path] = "./theme") -> bool:
    """Check a theme, print the report and return whether it passed."""
    results = ConfigChecker().check(theme_path)
    print_results(results)
    return results.success
