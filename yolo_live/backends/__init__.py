"""
Optional inference backends for yolo_live.

Each backend exposes the model handle interface the pipeline consumes:
`run(inputs: Mapping[str, ndarray]) -> Dict[str, ndarray]`, a `ready` flag and
an optional `warmup()`. Runtimes are imported lazily so the
pre/post-processing code works without them installed.
"""

from __future__ import annotations

__all__ = []
