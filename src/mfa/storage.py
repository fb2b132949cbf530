"""Per-run JSON snapshots.

Every artifact of a run lands in one directory as ``<name>_<run_id>.json``:
search_results, extraction_results, merged_batches, final_results,
grouped_results and summary. Files are written once and never updated.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def make_run_id(query: str = "") -> str:
    safe = re.sub(r"\W", "_", query)[:20] or "run"
    return f"{safe}_{uuid.uuid4().hex[:8]}"


class RunArtifacts:
    def __init__(self, output_dir: str | Path, run_id: str) -> None:
        self.output_dir = Path(output_dir)
        self.run_id = run_id
        self.paths: dict[str, Path] = {}

    def path_for(self, name: str) -> Path:
        return self.output_dir / f"{name}_{self.run_id}.json"

    def write(self, name: str, data: Any) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(name)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        self.paths[name] = path
        logger.info("Saved %s to %s", name, path)
        return path
