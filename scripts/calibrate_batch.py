#!/usr/bin/env python3
"""
Calibrate GLS light loggers at a known site and estimate their positions.

This CLI is a thin driver around `gls_calibration.batch.calibrate_batch`. It
discovers `.lux` files (recursively under --data), resolves the run
configuration (TOML profile, command-line flags, --set overrides), and writes
positions, GLSmerge tables and a processing log under --outdir.

Each `.lux` file is one individual. The logger is assumed to sit at the site
given by --site-lat/--site-lon during the first days of the record; that
period is used to calibrate the sun elevation of the twilights, which is then
applied to the rest of the deployment.

-------------------------------------------------------------------------------
Key features
-------------------------------------------------------------------------------
- Recursively discover `*.lux` under --data (drift-adjusted copies skipped).
- Automatic calibration window, twilight detection and quality filtering.
- Per-individual failure isolation: failures are logged, the batch goes on.
- Optional parallel processing (--jobs) and diagnostic figures (--plots).
- Configuration profiles from config/<name>.toml plus --set overrides.
- Display the docstring usage examples with `--examples`.

-------------------------------------------------------------------------------
Input / output conventions
-------------------------------------------------------------------------------
- Input directory: provided via --data (searched recursively).
- Individual id: file stem, e.g. `W086_24May17_215116.lux` -> W086_24May17_215116.
- Outputs: `<outdir>/data/*.csv`, `<outdir>/data/calibrations.joblib` and,
  with --plots, `<outdir>/figures/*.png`.
- With --log-dir, a JSON Lines log `run.jsonl` is written there.

-------------------------------------------------------------------------------
Command-line usage examples
-------------------------------------------------------------------------------
1) Minimal run:
   python scripts/calibrate_batch.py --data raw/ --outdir results \
       --site-lat 27.85 --site-lon -115.17

2) Name the site and change the light threshold:
   python scripts/calibrate_batch.py --data raw/ --outdir results \
       --site-lat 27.85 --site-lon -115.17 --site-name "Isla Natividad" \
       --threshold 1.5

3) Exclude equinox periods from the positions:
   python scripts/calibrate_batch.py --data raw/ --outdir results \
       --site-lat 27.85 --site-lon -115.17 \
       --exclude-period 2017-03-06:2017-04-03 \
       --exclude-period 2017-09-09:2017-10-07

4) Widen the accepted latitude band and use four worker processes:
   python scripts/calibrate_batch.py --data raw/ --outdir results \
       --site-lat 27.85 --site-lon -115.17 --lat-min -70 --lat-max 70 --jobs 4

5) Use a configuration profile from config/<name>.toml:
   python scripts/calibrate_batch.py --config example --data raw/

6) Override single keys:
   python scripts/calibrate_batch.py --config example --data raw/ \
       --set calibration.min_twilights=4 --set filter.max_interval_deviation_h=6

7) Print the effective configuration and exit:
   python scripts/calibrate_batch.py --config example --dump-effective-config

8) Write figures and a JSON Lines log:
   python scripts/calibrate_batch.py --data raw/ --outdir results \
       --site-lat 27.85 --site-lon -115.17 --plots --log-dir results/logs

9) Show only this example block and exit:
   python scripts/calibrate_batch.py --examples

-------------------------------------------------------------------------------
Parameters (selected)
-------------------------------------------------------------------------------
--data (str)                    Root directory for discovery (recursive).
--outdir (str)                  Output root (default: ./gls_output).
--site-lat / --site-lon         Known site coordinates (degrees).
--site-name (str)               Site label for logs and figures.
--threshold (lux)               Day/night light threshold (default: 2).
--min-calibration-twilights     Minimum twilights in the calibration window.
--elevation-min / --elevation-max
                                Search interval of the sun elevation (deg).
--exclude-period START:END      Inclusive date range to drop (repeatable).
--lat-min / --lat-max           Accepted latitude band (default: -60..60).
--jobs (int)                    Worker processes (-1 for all cores).
--plots                         Write diagnostic figures.
--config (str)                  Profile name, loads config/<name>.toml.
--set key=value                 Override a config key (repeatable).
--dump-effective-config         Print the resolved TOML and exit.
--log-dir (str)                 Directory for the JSON Lines run log.
--verbose                       DEBUG-level console output.

-------------------------------------------------------------------------------
Notes
-------------------------------------------------------------------------------
- Precedence: profile < command-line flags < --set.
- Exit status: 0 when the batch ran (even with failed individuals), 2 for
  usage/configuration errors, 1 when no input was found.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from gls_calibration.batch import calibrate_batch, discover_lux_files
from gls_calibration.core.config_loader import (
    apply_sets,
    build_pipeline_config,
    dump_effective_config,
    load_run_config,
    merge_dicts,
    site_from_config,
)
from gls_calibration.logging_config import setup_logging

log = logging.getLogger("calibrate_batch")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Calibrate GLS light loggers at a known site and estimate positions "
            "with the threshold method."
        )
    )
    p.add_argument(
        "--examples", action="store_true", help="Show usage examples and exit."
    )
    p.add_argument(
        "--config",
        type=str,
        default=None,
        help="Configuration profile name (loads config/<name>.toml).",
    )
    p.add_argument(
        "--set",
        dest="sets",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a config key, e.g. --set detection.threshold=1.5.",
    )
    p.add_argument(
        "--dump-effective-config",
        action="store_true",
        help="Print the effective configuration as TOML and exit.",
    )
    p.add_argument("--data", default=None, help="Directory with .lux files.")
    p.add_argument(
        "--outdir", default=None, help="Output directory (default: ./gls_output)."
    )

    p.add_argument("--site-lat", type=float, default=None, help="Site latitude (deg).")
    p.add_argument("--site-lon", type=float, default=None, help="Site longitude (deg).")
    p.add_argument("--site-name", type=str, default=None, help="Site name.")

    p.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Light threshold separating night and day (default: 2).",
    )
    p.add_argument(
        "--min-calibration-twilights",
        type=int,
        default=None,
        help="Minimum twilights in the calibration window (default: 2).",
    )
    p.add_argument(
        "--elevation-min",
        type=float,
        default=None,
        help="Lower bound of the sun-elevation search (default: -12).",
    )
    p.add_argument(
        "--elevation-max",
        type=float,
        default=None,
        help="Upper bound of the sun-elevation search (default: 2).",
    )
    p.add_argument(
        "--exclude-period",
        action="append",
        default=[],
        metavar="START:END",
        help="Inclusive date range (YYYY-MM-DD:YYYY-MM-DD) to drop; repeatable.",
    )
    p.add_argument("--lat-min", type=float, default=None, help="Minimum latitude.")
    p.add_argument("--lat-max", type=float, default=None, help="Maximum latitude.")

    p.add_argument(
        "--jobs", type=int, default=None, help="Parallel workers (default: 1)."
    )
    p.add_argument(
        "--plots", action="store_true", default=None, help="Write PNG figures."
    )
    p.add_argument("--log-dir", default=None, help="Directory for run.jsonl.")
    p.add_argument(
        "--verbose", action="store_true", help="DEBUG-level console output."
    )
    return p


def extract_examples_from_docstring() -> tuple[str, str]:
    """Return (title, body) of the 'Command-line usage examples' section."""
    doc = __doc__ or ""
    title = "Command-line usage examples"
    start_idx = doc.find(title)
    if start_idx == -1:
        return title, "No examples available."

    block = doc[start_idx:].splitlines()
    lines: List[str] = []
    # block[1] is the separator under the title
    for line in block[2:]:
        if "-" * 10 in line:
            break
        lines.append(line.rstrip())
    return title, "\n".join(lines).strip()


def _parse_period(text: str) -> List[str]:
    parts = text.split(":")
    if len(parts) != 2 or not all(p.strip() for p in parts):
        raise ValueError(f"--exclude-period expects START:END, got {text!r}")
    return [parts[0].strip(), parts[1].strip()]


def cli_overrides(args: argparse.Namespace, base: Dict[str, Any]) -> Dict[str, Any]:
    """Nested config dict with the values given on the command line."""
    out: Dict[str, Any] = {}

    def put(section: str, key: str, value: Any) -> None:
        if value is not None:
            out.setdefault(section, {})[key] = value

    put("site", "latitude", args.site_lat)
    put("site", "longitude", args.site_lon)
    put("site", "name", args.site_name)
    put("detection", "threshold", args.threshold)
    put("calibration", "min_twilights", args.min_calibration_twilights)

    if args.elevation_min is not None or args.elevation_max is not None:
        lo, hi = base.get("calibration", {}).get("elevation_interval_deg", [-12.0, 2.0])
        put(
            "calibration",
            "elevation_interval_deg",
            [
                args.elevation_min if args.elevation_min is not None else lo,
                args.elevation_max if args.elevation_max is not None else hi,
            ],
        )
    if args.lat_min is not None or args.lat_max is not None:
        lo, hi = base.get("positions", {}).get("lat_range_deg", [-60.0, 60.0])
        put(
            "positions",
            "lat_range_deg",
            [
                args.lat_min if args.lat_min is not None else lo,
                args.lat_max if args.lat_max is not None else hi,
            ],
        )
    if args.exclude_period:
        put("positions", "exclude_periods", [_parse_period(s) for s in args.exclude_period])

    put("output", "data_dir", args.data)
    put("output", "outdir", args.outdir)
    put("output", "jobs", args.jobs)
    put("output", "plots", args.plots)
    return out


# ---------------------------------------------------------------------------
# Main entry
# ---------------------------------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.examples:
        title, body = extract_examples_from_docstring()
        line = "-" * len(title)
        print(f"\n{line}\n{title}\n{line}\n")
        print(f"{body}\n")
        return 0

    setup_logging(
        log_dir=args.log_dir,
        console_level=logging.DEBUG if args.verbose else None,
    )

    try:
        cfg = load_run_config(str(Path.cwd()), profile=args.config)
        cfg = merge_dicts(cfg, cli_overrides(args, cfg))
        cfg = apply_sets(cfg, args.sets)
        pipeline_cfg = build_pipeline_config(cfg)
        site = site_from_config(cfg)
    except FileNotFoundError as e:
        parser.error(str(e))
    except ValueError as e:
        parser.error(f"Invalid configuration: {e}")

    if args.dump_effective_config:
        print(dump_effective_config(cfg))
        return 0

    if site is None:
        parser.error("site coordinates are required (--site-lat/--site-lon or [site]).")

    out_cfg = cfg.get("output", {})
    data_dir = out_cfg.get("data_dir")
    if not data_dir:
        parser.error("--data is required (or [output] data_dir in the config).")
    outdir = Path(out_cfg.get("outdir") or "gls_output").expanduser()

    data_path = Path(data_dir).expanduser()
    if not data_path.is_dir():
        print(f"ERROR: data directory not found: {data_path}", file=sys.stderr)
        return 1
    if not discover_lux_files(data_path):
        print(f"ERROR: no .lux files found in {data_path}", file=sys.stderr)
        return 1

    result = calibrate_batch(
        data_path,
        outdir,
        site,
        pipeline_cfg,
        n_jobs=int(out_cfg.get("jobs", 1)),
        create_plots=bool(out_cfg.get("plots", False)),
    )

    print(f"Total individuals: {len(result.results)}")
    print(f"Successfully processed: {result.n_success}")
    print(f"Failed: {result.n_failed}")
    for ind, r in result.results.items():
        if r.ok:
            s = r.summary
            print(
                f"[OK] {ind}: zenith={s.zenith:.2f} n_positions={s.n_positions} "
                f"hemisphere={s.hemisphere_check}"
            )
        else:
            print(f"[FAILED] {ind}: {r.stage}: {r.message}")
    print(f"Outputs written to {outdir / 'data'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
