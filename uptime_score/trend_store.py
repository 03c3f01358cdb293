from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

from .analysis.trend import TrendState


def load_states(path: Path) -> Dict[str, TrendState]:
    if not path.exists():
        return {}
    raw = json.loads(path.read_text(encoding="utf-8") or "{}")
    if not isinstance(raw, dict):
        raise ValueError(f"trend state file must hold a JSON object: {path}")
    return {str(k): TrendState.from_dict({**v, "target_id": k}) for k, v in raw.items() if isinstance(v, dict)}


def save_states(path: Path, states: Dict[str, TrendState]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {k: s.to_dict() for k, s in sorted(states.items())}
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
