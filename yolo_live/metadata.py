from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Union


def _strip_quotes(value: str) -> str:
    return value.strip().strip("'").strip('"')


def _parse_names_block(lines: List[str]) -> List[str]:
    """
    Parse the `names:` block of an Ultralytics-style metadata.yaml, either

        names:
          0: person
          1: bicycle

    or

        names:
          - person
          - bicycle
    """

    by_id: Dict[int, str] = {}
    listed: List[str] = []
    in_names = False

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue
        # Any unindented key ends the block.
        if not raw[:1].isspace() and not line.startswith("-"):
            break

        if line.startswith("- "):
            listed.append(_strip_quotes(line[2:]))
            continue
        if ":" not in line:
            continue
        left, right = line.split(":", 1)
        left = left.strip()
        if not left.isdigit():
            continue
        by_id[int(left)] = _strip_quotes(right)

    if listed and by_id:
        raise ValueError("names block mixes list and mapping entries")
    if listed:
        return listed

    expected = list(range(len(by_id)))
    if sorted(by_id) != expected:
        raise ValueError(f"Class ids must be contiguous from 0, got {sorted(by_id)}")
    return [by_id[i] for i in expected]


def load_class_labels(path: Union[str, Path]) -> List[str]:
    """
    Load the ordered class label table for a detector.

    `.yaml`/`.yml` files are read for their `names:` block (no PyYAML needed);
    anything else is treated as plain text with one label per line.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Label file not found: {path}")

    lines = path.read_text(encoding="utf-8").splitlines()
    if path.suffix.lower() in {".yaml", ".yml"}:
        labels = _parse_names_block(lines)
    else:
        labels = [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]

    if not labels:
        raise ValueError(f"No class labels found in {path}")
    return labels
