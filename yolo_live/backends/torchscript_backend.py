from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Union

import numpy as np

PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptModelConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: cast input to float16 (only if the model expects it)
    - output_names: names given to the model's outputs, in order
    """

    device: str = "cpu"
    half: bool = False
    output_names: Sequence[str] = ("output0",)


class TorchScriptModel:
    """
    TorchScript detector behind the model handle interface.

    Positional model: inputs are passed in mapping order. Only useful for the
    detector stage; the NMS network ships as ONNX.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptModelConfig = TorchScriptModelConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.device = torch.device(cfg.device)
        self.half = cfg.half
        self.output_names = tuple(cfg.output_names)

        model = torch.jit.load(str(self.model_path), map_location=self.device)
        model.eval()
        self.model = model
        self.ready = True

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        torch = self._torch
        args = []
        for blob in inputs.values():
            x = torch.as_tensor(blob, device=self.device)
            x = x.half() if self.half else x.float()
            args.append(x.contiguous())

        with torch.no_grad():
            y = self.model(*args)

        if not isinstance(y, (tuple, list)):
            y = (y,)
        outputs: Dict[str, np.ndarray] = {}
        for i, t in enumerate(y):
            name = self.output_names[i] if i < len(self.output_names) else f"output{i}"
            outputs[name] = t.detach().float().to("cpu").numpy()
        return outputs

    def warmup(self, shape: Optional[Sequence[int]] = None) -> None:
        shape = tuple(shape) if shape is not None else (1, 3, 640, 640)
        self.run({"images": np.zeros(shape, dtype=np.float32)})
