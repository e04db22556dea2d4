from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

PathLike = Union[str, Path]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OnnxRuntimeModelConfig:
    """
    Configuration for one ONNX Runtime session.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - intra_op_threads: 0 lets ORT decide
    """

    providers: Optional[Sequence[str]] = None
    intra_op_threads: int = 0


class OnnxRuntimeModel:
    """
    ONNX Runtime session behind the model handle interface.

    The detector and the NMS network are each wrapped in one of these. A
    session is safe to `run` from several threads; the handle keeps no
    per-call state.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeModelConfig = OnnxRuntimeModelConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        if cfg.intra_op_threads > 0:
            sess_opts.intra_op_num_threads = int(cfg.intra_op_threads)
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        self.input_names = tuple(i.name for i in self.session.get_inputs())
        self.output_names = tuple(o.name for o in self.session.get_outputs())
        self.ready = True
        LOGGER.info("Loaded %s (inputs=%s, outputs=%s)", self.model_path.name, self.input_names, self.output_names)

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    def input_shape(self, name: Optional[str] = None) -> Tuple[Any, ...]:
        name = name or self.input_names[0]
        for inp in self.session.get_inputs():
            if inp.name == name:
                return tuple(inp.shape)
        raise KeyError(name)

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        outputs = self.session.run(list(self.output_names), dict(inputs))
        return dict(zip(self.output_names, outputs))

    def warmup(self, inputs: Optional[Mapping[str, np.ndarray]] = None) -> None:
        """
        Run once on zeros so the first real frame doesn't pay for lazy init.
        Without `inputs`, the first input is fed a zero tensor of its declared
        shape (dynamic dims become 1).
        """

        if inputs is None:
            shape = tuple(d if isinstance(d, int) and d > 0 else 1 for d in self.input_shape())
            inputs = {self.input_names[0]: np.zeros(shape, dtype=np.float32)}
        self.run(inputs)
