"""Persist fitted models with joblib.

Layout of a model directory:

    <out_dir>/manifest.json
    <out_dir>/<name>.joblib

The manifest records each model's file and diagnostics so a directory can be
inspected without unpickling anything.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping

import joblib

from flightlab.modeling.base import FittedModel

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


def _safe_filename(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name).strip("._") or "model"


def save_models(models: Mapping[str, FittedModel], out_dir: Path) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    manifest: Dict[str, Dict[str, Any]] = {}
    used = set()
    for name, model in models.items():
        fname = _safe_filename(name)
        while fname in used:
            fname += "_"
        used.add(fname)

        path = out_dir / f"{fname}.joblib"
        joblib.dump(model, path)
        manifest[name] = {"file": path.name, "diagnostics": model.diagnostics()}
        logger.info("Saved model %r -> %s", name, path)

    manifest_path = out_dir / MANIFEST_NAME
    manifest_path.write_text(json.dumps(manifest, indent=2, sort_keys=True), encoding="utf-8")
    return manifest_path


def load_models(out_dir: Path) -> Dict[str, FittedModel]:
    out_dir = Path(out_dir)
    manifest_path = out_dir / MANIFEST_NAME
    if not manifest_path.exists():
        raise FileNotFoundError(f"No model manifest at {manifest_path}")

    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    models: Dict[str, FittedModel] = {}
    for name, entry in manifest.items():
        models[name] = joblib.load(out_dir / entry["file"])
    logger.info("Loaded %d model(s) from %s", len(models), out_dir)
    return models
