"""Run all exports of a run configuration in sequence.

State of incremental exports is loaded before and saved after each export,
so an interrupted run resumes at the first table that did not finish.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from dbextract.config import RunConfig, load_config
from dbextract.extractor import ExtractionOutput
from dbextract.logging import setup_logging
from dbextract.state import load_state, save_state
from dbextract.variants import create_extractor

logger = logging.getLogger(__name__)

__all__ = ["run"]


def run(
    config: Union[RunConfig, str, Path],
    output_dir: Union[str, Path],
    state_dir: Optional[Union[str, Path]] = None,
    **connection_options: Any,
) -> List[ExtractionOutput]:
    """Export every table of ``config``.

    Args:
        config: Run configuration, or the path of a YAML file holding one
        output_dir: Directory receiving ``<outputTable>.csv`` files
        state_dir: Directory of incremental state files
        **connection_options: Passed to the connection (e.g. ``sleep``)

    Returns:
        One ExtractionOutput per exported table, in configuration order.
    """
    if not isinstance(config, RunConfig):
        config = load_config(config)
    if config.logging is not None:
        setup_logging(
            verbose=config.logging.verbose,
            json_format=config.logging.json_format,
            log_file=config.logging.log_file,
        )

    extractor = create_extractor(config.db, output_dir, **connection_options)
    outputs: List[ExtractionOutput] = []
    try:
        for export_config in config.tables:
            state = load_state(export_config.output_table, state_dir)
            output = extractor.export(export_config, state)
            if export_config.is_incremental:
                save_state(export_config.output_table, output.state, state_dir)
            outputs.append(output)
    finally:
        extractor.connection.close()

    logger.info("Finished %d export(s)", len(outputs))
    return outputs
