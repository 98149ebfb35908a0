"""Accelerator detection for embedding inference."""

from typing import Any, Dict, Optional

import structlog
import torch

logger = structlog.get_logger("gpu_detector")


def detect_gpus() -> Dict[str, Any]:
    """Detect available accelerators and recommend a device."""
    gpu_info = {
        "cuda_available": False,
        "mps_available": False,  # Apple Metal Performance Shaders
        "gpu_count": 0,
        "recommended_device": "cpu",
    }

    if torch.cuda.is_available():
        gpu_info["cuda_available"] = True
        gpu_info["gpu_count"] = torch.cuda.device_count()
        gpu_info["recommended_device"] = "cuda:0"
    elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        gpu_info["mps_available"] = True
        gpu_info["gpu_count"] = 1
        gpu_info["recommended_device"] = "mps"

    logger.info(
        "GPU detection completed",
        cuda_available=gpu_info["cuda_available"],
        mps_available=gpu_info["mps_available"],
        gpu_count=gpu_info["gpu_count"],
        recommended_device=gpu_info["recommended_device"]
    )
    return gpu_info


def select_device(preference: str = "auto", explicit: Optional[str] = None) -> str:
    """Select the device to run the model on.

    Parameters
    - preference: ``auto``, ``cpu`` or ``gpu``
    - explicit: a torch device string (``cuda:1``) that bypasses detection
    """
    if explicit:
        logger.info("Device selected", device=explicit, preference="explicit")
        return explicit

    if preference == "cpu":
        device = "cpu"
    else:
        gpu_info = detect_gpus()
        device = gpu_info["recommended_device"]
        if preference == "gpu" and device == "cpu":
            logger.warning("GPU requested but not available, falling back to CPU")

    logger.info("Device selected", device=device, preference=preference)
    return device
