"""
Tool adapters (DxO PureRAW, Zerene Stacker, Hugin, generic).

Provides a factory to obtain the adapter for a configured tool.
Execution is handled by stageflow.core.coordinator.
"""

from typing import Optional

from .base import ToolAdapter, matchers_from_config
from .custom import CustomAdapter
from .hugin import HuginAdapter
from .pureraw import PureRawAdapter
from .zerene import ZereneAdapter


def get_adapter(name: str, platform: Optional[str] = None) -> ToolAdapter:
    s = name.lower()
    if s == "pureraw":
        return PureRawAdapter(platform)
    if s == "zerene":
        return ZereneAdapter(platform)
    if s == "hugin":
        return HuginAdapter(platform)
    if s == "custom":
        return CustomAdapter(platform)
    raise ValueError(f"Unsupported tool adapter: {name}")


__all__ = [
    "ToolAdapter",
    "PureRawAdapter",
    "ZereneAdapter",
    "HuginAdapter",
    "CustomAdapter",
    "get_adapter",
    "matchers_from_config",
]
