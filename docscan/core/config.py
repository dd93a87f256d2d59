# docscan/core/config.py
from __future__ import annotations
from pathlib import Path
from typing import Dict, Optional, Union
import copy
import yaml

# Defaults tuned for phone-camera frames of A4/Letter pages
DEFAULT_CFG: Dict = {
    "working_max_dim": 640,            # one-shot detection works on this long edge
    "live_max_dim": 480,               # live frames are downscaled to this before dispatch
    "min_area_ratio": 0.04,            # relative to working frame area
    "max_contours": 10,                # largest contours kept per binary map
    "epsilons": [0.02, 0.03, 0.04, 0.05, 0.06, 0.08],  # approxPolyDP tolerance, fraction of perimeter
    "angle_range": [45.0, 135.0],      # interior angle window, degrees
    "strategy_mode": "fail_fast",      # one-shot: strategies in order, first one with a quad wins
    "live_strategy_mode": "fail_fast", # live: stop at the first strategy that yields anything
    "blur_ksize": 5,

    "canny": {"thresholds": [[50, 150], [30, 100], [75, 200]], "kernel": 3},
    "adaptive": {"params": [[15, 5], [25, 8], [11, 3]], "kernel": 3},
    "otsu": {"kernel": 5},
    "heavy_blur": {"ksize": 11, "low": 40, "high": 120, "kernel": 5},

    # A4 / Letter / square, as long-edge over short-edge
    "paper_aspects": [1.414, 1.294, 1.0],
    "aspect_tolerance": 0.8,

    "corner_order": "sum_diff",        # or "angular"
    "corner_refine": {"enabled": True, "win": 5, "max_win": 25},
    "min_output_px": 50,

    "host": {
        "mode": "thread",              # or "process"
        "timeout_s": 5.0,
        "load_timeout_s": 30.0,
        "join_timeout_s": 2.0,
    },
    "live": {"interval_s": 0.3, "poll_s": 0.05},

    "debug": False,
}


def merge_cfg(cfg: Optional[Dict]) -> Dict:
    merged = copy.deepcopy(DEFAULT_CFG)
    if not cfg:
        return merged
    for k, v in cfg.items():
        if isinstance(v, dict) and k in merged and isinstance(merged[k], dict):
            merged[k] = {**merged[k], **v}
        else:
            merged[k] = v
    return merged


def load_cfg(path: Union[str, Path]) -> Dict:
    """
    Read a YAML override file and merge it over the defaults.
    Raises FileNotFoundError if the file does not exist.
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config at {path} must be a mapping, got {type(data).__name__}")
    return merge_cfg(data)
