from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict


def write_report_json(report_dict: Dict[str, Any], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    # NaN is not valid JSON
    text = json.dumps(report_dict, indent=2, sort_keys=False, allow_nan=False)
    output_path.write_text(text + "\n", encoding="utf-8")
    return output_path
