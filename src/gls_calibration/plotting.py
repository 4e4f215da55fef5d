from __future__ import annotations

"""
plotting.py
===========
Diagnostic figures for one individual.

- ``<id>_calibration.png``: calibration-window light curve with the
  threshold and the detected twilights, plus the twilight sequence.
- ``<id>_track.png``: estimated positions with the known site.

Figures are rendered with the non-interactive Agg backend.
"""

import os
from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from .core.model import (  # noqa: E402
    LightSeries,
    PositionSequence,
    SiteCoordinate,
    TwilightList,
    from_posix,
)


def plot_calibration(
    light: LightSeries,
    twilights: TwilightList,
    threshold: float,
    individual_id: str,
    output_dir: str | os.PathLike,
) -> Path:
    out = Path(output_dir) / f"{individual_id}_calibration.png"
    out.parent.mkdir(parents=True, exist_ok=True)

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 7))
    ax1.plot(from_posix(light.times), light.light, color="0.6", linewidth=1.0)
    ax1.axhline(threshold, color="red", linestyle="--", label="Threshold")
    t = from_posix(twilights.times)
    rise = np.asarray(twilights.rise, dtype=bool)
    ax1.scatter(t[rise], np.full(rise.sum(), threshold), marker="^",
                color="orange", edgecolor="k", zorder=3, label="Sunrise")
    ax1.scatter(t[~rise], np.full((~rise).sum(), threshold), marker="v",
                color="lightblue", edgecolor="k", zorder=3, label="Sunset")
    ax1.set_ylabel("Light (lux)")
    ax1.set_title(f"Calibration: {individual_id}")
    ax1.legend(loc="upper left")
    ax1.grid(True, alpha=0.25)

    ax2.scatter(t, np.arange(1, len(twilights) + 1),
                c=np.where(rise, "orange", "blue"), s=16)
    ax2.set_xlabel("Detected twilight time (UTC)")
    ax2.set_ylabel("Twilight index")
    ax2.set_title("Twilight sequence")
    ax2.grid(True, alpha=0.25)

    fig.tight_layout()
    fig.savefig(out, dpi=120)
    plt.close(fig)
    return out


def plot_track(
    positions: PositionSequence,
    site: SiteCoordinate,
    individual_id: str,
    output_dir: str | os.PathLike,
    hemisphere: Optional[str] = None,
) -> Path:
    out = Path(output_dir) / f"{individual_id}_track.png"
    out.parent.mkdir(parents=True, exist_ok=True)

    lon = np.asarray(positions.longitude_deg, dtype=float)
    lat = np.asarray(positions.latitude_deg, dtype=float)

    fig, ax = plt.subplots(figsize=(12, 8))
    if len(positions):
        # 25 % margin around the track, kept on the globe.
        lon_pad = 0.25 * (lon.max() - lon.min())
        lat_pad = 0.25 * (lat.max() - lat.min())
        ax.set_xlim(
            max(-180.0, min(lon.min(), site.longitude_deg) - lon_pad - 1.0),
            min(180.0, max(lon.max(), site.longitude_deg) + lon_pad + 1.0),
        )
        ax.set_ylim(
            max(-90.0, min(lat.min(), site.latitude_deg) - lat_pad - 1.0),
            min(90.0, max(lat.max(), site.latitude_deg) + lat_pad + 1.0),
        )
        ax.plot(lon, lat, color="blue", linewidth=1.5, label="Track")
        ax.scatter(lon, lat, color="darkblue", s=8)
    ax.scatter([site.longitude_deg], [site.latitude_deg], marker="^", s=120,
               color="red", zorder=3, label=site.name)

    subtitle = f"n = {len(positions)} positions"
    if hemisphere:
        subtitle = f"{subtitle}, hemisphere {hemisphere}"
    ax.set_title(f"Track: {individual_id}\n{subtitle}", fontsize=10)
    ax.set_xlabel("Longitude (deg E)")
    ax.set_ylabel("Latitude (deg N)")
    ax.grid(True, alpha=0.25, linestyle=":")
    ax.legend(loc="upper right")

    fig.savefig(out, dpi=120, bbox_inches="tight")
    plt.close(fig)
    return out


__all__ = ["plot_calibration", "plot_track"]
