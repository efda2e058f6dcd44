"""Pipeline assembly for digitnet training runs."""

from __future__ import annotations

import json
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np

from ..core.errors import ConfigurationError
from ..core.network import build_engine
from ..core.strategies import DEFAULT_BATCH_SIZE, resolve_strategy
from ..core.types import NUM_CLASSES, RunResult
from ..data.augmentation import AugmentationConfig
from ..data.glyphs import build_glyph_dataset
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import Broadcast, CsvSink, JsonlSink, ProgressCapture
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary
from .workbench import parse_structure

_PRESETS: Dict[str, Mapping[str, object]] = {
    "glyphs-quick": {
        "data": {
            "name": "glyphs",
            "options": {"fonts": ["simplex"], "variants": 3, "holdout_variants": 1, "seed": 0},
        },
        "model": {"engine": "sigmoid", "layers": [1024, 32, 10], "learning_rate": 0.25},
        "train": {
            "epochs": 3,
            "acceptable_error": 0.01,
            "strategy": "sequential",
            "seed": 7,
            "run_dir": "runs/glyphs-quick",
            "enable_plots": False,
        },
    },
    "glyphs-stand": {
        "data": {
            "name": "glyphs",
            "options": {
                "fonts": ["simplex", "duplex", "complex"],
                "variants": 10,
                "holdout_variants": 3,
                "seed": 0,
            },
        },
        "model": {"engine": "sigmoid", "layers": "1024;150;10", "learning_rate": 0.25},
        "train": {
            "epochs": 20,
            "acceptable_error": 0.05,
            "strategy": "sequential",
            "seed": 1,
            "run_dir": "runs/glyphs-stand",
            "enable_plots": False,
        },
    },
    "glyphs-batched": {
        "data": {
            "name": "glyphs",
            "options": {
                "fonts": ["simplex", "duplex"],
                "variants": 10,
                "holdout_variants": 3,
                "seed": 0,
                "workers": 4,
            },
        },
        "model": {"engine": "sigmoid", "layers": [1024, 64, 10], "learning_rate": 0.25},
        "train": {
            "epochs": 30,
            "acceptable_error": 0.05,
            "strategy": "batched_parallel",
            "batch_size": 8,
            "workers": 4,
            "seed": 3,
            "run_dir": "runs/glyphs-batched",
            "enable_plots": False,
        },
    },
    "glyphs-unsynchronized": {
        "data": {
            "name": "glyphs",
            "options": {"fonts": ["simplex", "duplex"], "variants": 10, "holdout_variants": 3, "seed": 0},
        },
        "model": {"engine": "sigmoid", "layers": [1024, 64, 10], "learning_rate": 0.25},
        "train": {
            "epochs": 20,
            "acceptable_error": 0.05,
            "strategy": "unsynchronized_parallel",
            "workers": 4,
            "seed": 3,
            "run_dir": "runs/glyphs-unsynchronized",
            "enable_plots": False,
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None


def read_config_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        import yaml

        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        presets: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = read_config_file(file)
                required = {"data", "model", "train"}
                missing = required - set(data)
                if missing:
                    missing_str = ", ".join(sorted(missing))
                    message = f"Preset {file.name} is missing required sections: " f"{missing_str}"
                    raise KeyError(message)
                presets[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = presets
    cache = _FILE_PRESETS_CACHE or {}
    return {name: deepcopy(cfg) for name, cfg in cache.items()}


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {}
    combined.update({name: deepcopy(cfg) for name, cfg in _PRESETS.items()})
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Mapping[str, object]:
    file_overrides = _file_presets()
    if name in file_overrides:
        return file_overrides[name]
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    """Render, augment, train and evaluate as described by ``config``."""

    data_cfg = dict(config["data"])
    model_cfg = dict(config["model"])
    train_cfg = dict(config["train"])

    dataset_name = str(data_cfg.get("name", "glyphs"))
    if dataset_name != "glyphs":
        raise ConfigurationError(f"Unknown sample source: {dataset_name}")
    data_opts = dict(data_cfg.get("options", {}))
    augmentation = AugmentationConfig.from_mapping(data_opts.pop("augmentation", None))
    dataset = build_glyph_dataset(augmentation=augmentation, **data_opts)

    dims = _build_dims(model_cfg)
    input_size = dataset.train[0].input.size
    if dims[0] != input_size:
        raise ConfigurationError(f"Configured input layer {dims[0]} but samples have {input_size}")
    if dims[-1] != NUM_CLASSES:
        raise ConfigurationError(f"Output layer must have {NUM_CLASSES} units, got {dims[-1]}")

    seed = int(train_cfg.get("seed", 0))
    engine_name = str(model_cfg.get("engine", "sigmoid"))
    engine_opts = {}
    if "learning_rate" in model_cfg:
        engine_opts["learning_rate"] = float(model_cfg["learning_rate"])
    network = build_engine(engine_name, dims, rng=np.random.default_rng(seed), **engine_opts)

    strategy_name = str(train_cfg.get("strategy", "sequential"))
    workers = train_cfg.get("workers")
    runner = resolve_strategy(
        strategy_name,
        batch_size=int(train_cfg.get("batch_size", DEFAULT_BATCH_SIZE)),
        workers=int(workers) if workers is not None else None,
    )

    epochs = int(train_cfg.get("epochs", 1))
    acceptable_error = float(train_cfg.get("acceptable_error", 0.0))

    run_dir = _resolve_run_dir(train_cfg, dataset_name, strategy_name)
    run_dir.mkdir(parents=True, exist_ok=True)

    _print_startup_summary(
        dataset_name=dataset_name,
        samples=len(dataset.train),
        dims=dims,
        engine=engine_name,
        strategy=strategy_name,
        epochs=epochs,
        param_count=network.parameter_count(),
    )

    jsonl = JsonlSink(run_dir / "metrics.jsonl", seed=seed)
    csv_sink = CsvSink(run_dir / "metrics.csv")
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))
    capture = ProgressCapture()

    final_error = network.train_on_dataset(
        dataset.train,
        epochs,
        acceptable_error,
        runner,
        progress=Broadcast([jsonl, csv_sink, plots, capture]),
    )
    plots.close()

    evaluation = dataset.holdout if len(dataset.holdout) else dataset.train
    accuracy = evaluation.evaluate_accuracy(network)

    weights_path = ""
    if hasattr(network, "save"):
        weights_path = str(network.save(run_dir / "weights.npz"))

    results = {
        "epochs": capture.epochs,
        "final_error": float(final_error),
        "accuracy": float(accuracy),
        "evaluated_on": "holdout" if len(dataset.holdout) else "train",
    }
    safe_config = _safe_config(config, dims)
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=safe_config,
        dataset_provenance=dataset.provenance,
        results=results,
    )
    summary_tail = int(train_cfg.get("summary_tail", 5))
    summary_path = write_summary(jsonl.path, run_dir / "summary.json", tail=summary_tail)
    (run_dir / "config.json").write_text(json.dumps(safe_config, indent=2))

    return RunResult(
        epochs=capture.epochs,
        final_error=float(final_error),
        accuracy=float(accuracy),
        metrics_path=str(jsonl.path),
        manifest_path=manifest,
        summary_path=str(summary_path),
        weights_path=weights_path,
    )


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str, strategy: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(train_cfg["run_dir"])
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset / strategy


def _build_dims(model_cfg: Mapping[str, object]) -> List[int]:
    layers = model_cfg.get("layers")
    if layers is None:
        raise ConfigurationError("model.layers is required")
    if isinstance(layers, str):
        return parse_structure(layers)
    return [int(size) for size in layers]  # type: ignore[union-attr]


def _safe_config(config: Mapping[str, object], dims: Sequence[int]) -> Mapping[str, object]:
    copied = json.loads(json.dumps(config))
    copied.setdefault("model", {})["layers"] = list(dims)
    return copied


def _print_startup_summary(
    *,
    dataset_name: str,
    samples: int,
    dims: Sequence[int],
    engine: str,
    strategy: str,
    epochs: int,
    param_count: int,
) -> None:
    print("=== digitnet run ===")
    print(f"Samples       : {dataset_name} ({samples})")
    print(f"Layers        : {list(dims)}")
    print(f"Engine        : {engine}")
    print(f"Execution     : {strategy}")
    print(f"Epochs        : {epochs}")
    print(f"Parameters    : {param_count}")
    print("====================")


__all__ = ["load_preset", "presets", "read_config_file", "run_pipeline"]
