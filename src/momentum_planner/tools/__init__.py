"""Tool gateway exposed to the language model."""

from .gateway import ToolGateway, ToolSpec

__all__ = ["ToolGateway", "ToolSpec"]
