"""Streaming chat gateway with retrieval augmentation and single-shot tool use."""

__version__ = "0.1.0"
__app_name__ = "chatgateway"
