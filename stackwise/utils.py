"""Utility functions for tracking and comparing trained models."""

import hashlib
import json
from collections import OrderedDict
from typing import Any, Dict, Mapping, Sequence

import numpy as np

from stackwise.core.resampling import Resample


def compute_resample_hash(resamples: Sequence[Resample]) -> str:
    """Compute a hash of a resampling scheme.

    Two models share resamples exactly when their hashes are equal.

    Parameters
    ----------
    resamples : sequence of Resample

    Returns
    -------
    hash_str : str
        Truncated SHA256 of every resample's ids and index sets.
    """
    digest = hashlib.sha256()
    for resample in sorted(resamples, key=lambda r: r.resample_id):
        digest.update(f"{resample.resample_id}:{resample.repeat}:{resample.fold}|".encode())
        digest.update(np.asarray(resample.train_index, dtype=np.int64).tobytes())
        digest.update(b'|')
        digest.update(np.asarray(resample.holdout_index, dtype=np.int64).tobytes())
    return digest.hexdigest()[:16]


def format_params(params: Dict[str, Any]) -> str:
    """Stable JSON rendering of a hyperparameter combination."""
    return json.dumps(params, sort_keys=True, default=str)


def name_models(models) -> "OrderedDict[str, Any]":
    """Ordered name -> model mapping from a mapping or a list of models.

    Models in a list are named by their name attribute.

    Raises:
        ValueError: If two models in a list share a name
    """
    if isinstance(models, Mapping):
        return OrderedDict(models)

    named: "OrderedDict[str, Any]" = OrderedDict()
    for model in models:
        if model.name in named:
            raise ValueError(f"Duplicate model name '{model.name}'; pass a mapping instead")
        named[model.name] = model
    return named
