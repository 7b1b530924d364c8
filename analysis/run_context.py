"""Structured output directories and provenance for the analysis phases.

Each phase (eda -> pca -> clustering) runs inside a RunContext:

    results/<dataset>/<phase>/
        README.md                 primer for the phase
        latest -> <date>          most recent run
        <date>/
            plots/  data/
            run_log.txt           everything printed during the run
            run_info.json         git commit, timing, params, inputs

Inputs are recorded so a later phase can tell which upstream run it read:

    with RunContext(
        dataset="acs2015",
        analysis_name="pca",
        params=vars(args),
        inputs={"eda": eda_dir},
        primer=PCA_PRIMER,
    ) as ctx:
        scores.write_parquet(ctx.data_dir / "pc_scores.parquet")
"""

from __future__ import annotations

import io
import json
import re
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType


class _Tee(io.TextIOBase):
    """Write-through stream that keeps a copy of everything written."""

    def __init__(self, target: io.TextIOBase) -> None:
        self._target = target
        self._log = io.StringIO()

    def write(self, text: str) -> int:
        self._target.write(text)
        return self._log.write(text)

    def flush(self) -> None:
        self._target.flush()

    @property
    def captured(self) -> str:
        return self._log.getvalue()


def _normalize_dataset(dataset: str) -> str:
    """Filesystem-safe dataset label.

    Examples:
        "ACS 2015"     -> "acs_2015"
        "acs2015/2016" -> "acs2015_2016"
    """
    return re.sub(r"[^a-z0-9_-]+", "_", dataset.strip().lower()).strip("_")


def _git_commit() -> str:
    try:
        out = subprocess.run(
            ["git", "rev-parse", "HEAD"], capture_output=True, text=True, timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return "unknown"
    return out.stdout.strip() if out.returncode == 0 else "unknown"


def describe_input(path: Path) -> dict:
    """Fingerprint an input: a file's size and mtime, or an upstream run's identity.

    For a phase run directory (or its ``latest`` link) the upstream
    run_info.json is read, so the eda -> pca -> clustering chain stays traceable.
    """
    path = Path(path)
    info: dict = {"path": str(path), "exists": path.exists()}
    if not info["exists"]:
        return info
    resolved = path.resolve()
    info["resolved"] = str(resolved)
    if resolved.is_file():
        stat = resolved.stat()
        info["bytes"] = stat.st_size
        info["modified"] = datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat()
        return info
    run_info = resolved / "run_info.json"
    if run_info.exists():
        with open(run_info) as f:
            upstream = json.load(f)
        for key in ("analysis", "run_date", "git_commit", "status"):
            info[key] = upstream.get(key)
    return info


class RunContext:
    """Context manager for one run of an analysis phase.

    Attributes:
        dataset: Normalized dataset label (e.g. "acs2015").
        analysis_name: Phase name ("eda", "pca", "clustering").
        run_dir: results/<dataset>/<phase>/<date>/
        plots_dir, data_dir: subdirectories of run_dir.
    """

    def __init__(
        self,
        dataset: str,
        analysis_name: str,
        params: dict | None = None,
        inputs: dict[str, Path] | None = None,
        results_root: Path | None = None,
        primer: str | None = None,
    ) -> None:
        self.dataset = _normalize_dataset(dataset)
        self.analysis_name = analysis_name
        self.params = params or {}
        self.inputs = inputs or {}
        self.run_date = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        self.phase_dir = (results_root or Path("results")) / self.dataset / analysis_name
        self.run_dir = self.phase_dir / self.run_date
        self.plots_dir = self.run_dir / "plots"
        self.data_dir = self.run_dir / "data"

        self._primer = primer
        self._tee: _Tee | None = None
        self._stdout: io.TextIOBase | None = None
        self._started: datetime | None = None

    def __enter__(self) -> RunContext:
        for d in (self.plots_dir, self.data_dir):
            d.mkdir(parents=True, exist_ok=True)
        if self._primer:
            (self.phase_dir / "README.md").write_text(self._primer, encoding="utf-8")

        self._stdout = sys.stdout
        self._tee = _Tee(sys.stdout)
        sys.stdout = self._tee  # type: ignore[assignment]
        self._started = datetime.now(timezone.utc)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        sys.stdout = self._stdout  # type: ignore[assignment]
        log = self._tee.captured if self._tee else ""
        (self.run_dir / "run_log.txt").write_text(log, encoding="utf-8")

        with open(self.run_dir / "run_info.json", "w") as f:
            json.dump(self.run_info(exc_type), f, indent=2, default=str)

        latest = self.phase_dir / "latest"
        if latest.is_symlink() or latest.exists():
            latest.unlink()
        latest.symlink_to(self.run_date)

    def run_info(self, exc_type: type[BaseException] | None = None) -> dict:
        return {
            "analysis": self.analysis_name,
            "dataset": self.dataset,
            "run_date": self.run_date,
            "started": self._started.isoformat() if self._started else None,
            "finished": datetime.now(timezone.utc).isoformat(),
            "status": "failed" if exc_type else "ok",
            "error": exc_type.__name__ if exc_type else None,
            "git_commit": _git_commit(),
            "python_version": sys.version,
            "params": self.params,
            "inputs": {name: describe_input(p) for name, p in self.inputs.items()},
        }
