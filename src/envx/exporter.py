"""Render staged variables as dotenv, JSON, YAML, text, PowerShell or shell."""

import json
import logging
import math
from pathlib import Path

import yaml

from envx.domain.dotenv import format_line
from envx.domain.patterns import matches_pattern
from envx.formats import Format, detect_format
from envx.models import EnvVar, utcnow

logger = logging.getLogger(__name__)

HEADER = "Environment variables exported by envx"


def _escape_powershell(value: str) -> str:
    return value.replace("`", "``").replace('"', '`"').replace("$", "`$")


def _escape_shell(value: str) -> str:
    return (
        value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$").replace("`", "\\`")
    )


class Exporter:
    """Holds the variables to export and renders them in any textual format.

    With ``include_metadata`` every format gets a header (date, count) and a
    provenance comment per variable; JSON switches to the wrapped
    ``{exported_at, count, variables}`` shape instead.
    """

    def __init__(self, variables: list[EnvVar] | None = None, include_metadata: bool = False) -> None:
        self.variables: list[EnvVar] = list(variables or [])
        self.include_metadata = include_metadata

    def count(self) -> int:
        return len(self.variables)

    def filter_by_patterns(self, patterns: list[str]) -> None:
        self.variables = [
            var for var in self.variables if any(matches_pattern(var.name, p) for p in patterns)
        ]

    def _header(self, comment: str = "#") -> list[str]:
        if not self.include_metadata:
            return []
        now = utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")
        return [f"{comment} {HEADER}", f"{comment} Date: {now}", f"{comment} Count: {self.count()}", ""]

    def _provenance(self, var: EnvVar, comment: str = "#") -> list[str]:
        if not self.include_metadata:
            return []
        return [f"{comment} Source: {var.source_label}, Modified: {var.modified.isoformat()}"]

    def to_dotenv(self) -> str:
        lines = self._header()
        for var in self.variables:
            lines.extend(self._provenance(var))
            lines.append(format_line(var.name, var.value))
        return "\n".join(lines) + "\n" if lines else ""

    def to_text(self) -> str:
        lines = self._header()
        for var in self.variables:
            lines.extend(self._provenance(var))
            lines.append(f"{var.name}={var.value}")
        return "\n".join(lines) + "\n" if lines else ""

    def to_json(self) -> str:
        if not self.include_metadata:
            return json.dumps({var.name: var.value for var in self.variables}, indent=2)
        payload = {
            "exported_at": utcnow().isoformat(),
            "count": self.count(),
            "variables": [
                {
                    "name": var.name,
                    "value": var.value,
                    "source": var.source_label,
                    "modified": var.modified.isoformat(),
                    "original_value": var.original_value,
                }
                for var in self.variables
            ],
        }
        return json.dumps(payload, indent=2)

    def to_yaml(self) -> str:
        lines = self._header()
        for var in self.variables:
            lines.extend(self._provenance(var))
            dumped = yaml.safe_dump(
                {var.name: var.value},
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
                width=math.inf,
            )
            lines.append(dumped.rstrip("\n"))
        return "\n".join(lines) + "\n" if lines else ""

    def to_powershell(self) -> str:
        lines = self._header()
        for var in self.variables:
            lines.extend(self._provenance(var))
            lines.append(f'$env:{var.name} = "{_escape_powershell(var.value)}"')
        return "\n".join(lines) + "\n" if lines else ""

    def to_shell(self) -> str:
        lines = ["#!/bin/bash", *self._header()]
        for var in self.variables:
            lines.extend(self._provenance(var))
            lines.append(f'export {var.name}="{_escape_shell(var.value)}"')
        return "\n".join(lines) + "\n"

    def render(self, fmt: Format) -> str:
        renderers = {
            Format.DOTENV: self.to_dotenv,
            Format.JSON: self.to_json,
            Format.YAML: self.to_yaml,
            Format.TEXT: self.to_text,
            Format.POWERSHELL: self.to_powershell,
            Format.SHELL: self.to_shell,
        }
        return renderers[fmt]()

    def export_to_file(self, path: Path, fmt: Format | None = None) -> Format:
        """Write the rendered document, creating parent directories as needed."""
        fmt = fmt or detect_format(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(fmt), encoding="utf-8")
        logger.info("exported %d variables to %s (%s)", self.count(), path, fmt.value)
        return fmt
