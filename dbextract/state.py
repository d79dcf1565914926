"""Incremental fetching state.

The state records the last value of the incremental fetching column seen
by a previous export, so the next export resumes from it. It is an
immutable value: each export receives the prior state and returns a new
one.

State is persisted as JSON, e.g. ``{"lastFetchedRow": "5"}``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

__all__ = [
    "IncrementalFetchingState",
    "delete_state",
    "get_state_path",
    "load_state",
    "save_state",
]

DEFAULT_STATE_DIR = ".state"
STATE_KEY = "lastFetchedRow"


@dataclass(frozen=True)
class IncrementalFetchingState:
    """Last fetched value of the incremental column, or None."""

    last_fetched_row: Any = None

    @property
    def has_value(self) -> bool:
        return self.last_fetched_row is not None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "IncrementalFetchingState":
        if not data:
            return cls()
        return cls(last_fetched_row=data.get(STATE_KEY))

    def to_dict(self) -> Dict[str, Any]:
        if self.last_fetched_row is None:
            return {}
        return {STATE_KEY: self.last_fetched_row}


def _get_state_dir() -> Path:
    return Path(os.environ.get("DBEXTRACT_STATE_DIR", DEFAULT_STATE_DIR))


def get_state_path(output_table: str, state_dir: Optional[Union[str, Path]] = None) -> Path:
    """Get the state file path for an output table."""
    directory = Path(state_dir) if state_dir is not None else _get_state_dir()
    safe_name = "".join(c if c.isalnum() or c in "-_." else "_" for c in output_table)
    return directory / f"{safe_name}_state.json"


def load_state(
    output_table: str, state_dir: Optional[Union[str, Path]] = None
) -> IncrementalFetchingState:
    """Load the stored state for an output table.

    A missing or unreadable state file yields an empty state, which makes
    the next export a full load.
    """
    path = get_state_path(output_table, state_dir)
    if not path.exists():
        logger.debug("No state found for %s", output_table)
        return IncrementalFetchingState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Invalid state file for %s: %s", output_table, e)
        return IncrementalFetchingState()

    state = IncrementalFetchingState.from_dict(data)
    logger.debug("Found state for %s: %s", output_table, state.last_fetched_row)
    return state


def save_state(
    output_table: str,
    state: IncrementalFetchingState,
    state_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """Persist state after a successful export."""
    path = get_state_path(output_table, state_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
    logger.info("Saved state for %s: %s", output_table, state.last_fetched_row)
    return path


def delete_state(output_table: str, state_dir: Optional[Union[str, Path]] = None) -> bool:
    """Delete stored state to force a full reload."""
    path = get_state_path(output_table, state_dir)
    if path.exists():
        path.unlink()
        logger.info("Deleted state for %s", output_table)
        return True
    return False
