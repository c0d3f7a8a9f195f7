from __future__ import annotations

import logging
from typing import Iterable

from asammdf import MDF  # pivotal dependency for MDF file handling
import numpy as np

from enginecalc.core import LogData

logger = logging.getLogger(__name__)


def _channel_units(mdf: MDF) -> dict[str, str | None]:
    """First unit seen for each channel name (empty units become None)."""
    units: dict[str, str | None] = {}
    for group in mdf.groups:
        for channel in group.channels:
            units.setdefault(channel.name, getattr(channel, "unit", None) or None)
    return units


def load_log(
    path: str,
    channels: Iterable[str] | None = None,
    raster: float | None = None,
) -> LogData:
    """Read an MDF measurement into the normalized LogData shape.

    Parameters
    ----------
    path:
        MDF file (.mf4 / .mdf / .dat) readable by asammdf.
    channels:
        Optional channel names to keep; all channels by default.
    raster:
        Optional resampling period in seconds. Without it, channels are
        merged on the union of their time bases by asammdf.

    Only numeric channels are kept; the time vector is the absolute
    measurement time (not shifted to start at zero).
    """
    with MDF(path) as mdf:
        units = _channel_units(mdf)
        frame = mdf.to_dataframe(
            channels=list(channels) if channels is not None else None,
            raster=raster,
            time_from_zero=False,
        )

    numeric = frame.select_dtypes(include="number")
    skipped = [str(c) for c in frame.columns if c not in numeric.columns]
    if skipped:
        logger.debug("Skipping non-numeric MDF channels: %s", ", ".join(skipped))

    names = [str(c) for c in numeric.columns]
    log = LogData(
        channels=names,
        data=numeric.to_numpy(dtype=np.float64),
        times=np.asarray(numeric.index, dtype=np.float64),
        units=[units.get(name) for name in names],
    )
    logger.info("Loaded %d channels x %d records from %s", log.n_channels, log.n_rows, path)
    return log
