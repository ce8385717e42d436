"""
YAML rewrite tables loader.

Loads the plain name mappings from ``data/rewrite_rules.yaml``. Keeping them in
one file keeps the autofix engine and the version converter consistent: both
read the same namespaced-function table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_RULES_FILE = Path(__file__).resolve().parent.parent / "data" / "rewrite_rules.yaml"
DEFAULT_IMPORT_LINE = "import ta"


@dataclass(frozen=True)
class RewriteTables:
    """Name mappings used by rewrites."""

    namespaced_functions: Dict[str, str] = field(default_factory=dict)
    declaration_renames: Dict[str, str] = field(default_factory=dict)
    remote_data_renames: Dict[str, str] = field(default_factory=dict)
    default_import: str = DEFAULT_IMPORT_LINE
    schema_version: str = "1.0"


def load_rewrite_tables(rules_file: Optional[Path] = None) -> RewriteTables:
    """
    Load rewrite tables from YAML.

    A missing or malformed file is logged and yields empty tables; rewrites
    then become no-ops instead of failing the caller.
    """
    path = Path(rules_file) if rules_file else DEFAULT_RULES_FILE
    if not path.exists():
        logger.error(f"Rewrite rules file does not exist: {path}")
        return RewriteTables()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse {path.name}: {e}")
        return RewriteTables()

    tables = RewriteTables(
        namespaced_functions=dict(data.get("namespaced_functions") or {}),
        declaration_renames=dict(data.get("declaration_renames") or {}),
        remote_data_renames=dict(data.get("remote_data_renames") or {}),
        default_import=str(data.get("default_import") or DEFAULT_IMPORT_LINE),
        schema_version=str(data.get("version", "1.0")),
    )
    logger.info(
        f"Loaded rewrite tables from {path.name}: "
        f"{len(tables.namespaced_functions)} namespaced functions, "
        f"{len(tables.declaration_renames)} declaration renames"
    )
    return tables


@lru_cache(maxsize=1)
def default_rewrite_tables() -> RewriteTables:
    """Tables shipped with the package (read once per process)."""
    return load_rewrite_tables()
