"""Pipeline jobs run after a dapp build finishes."""

from __future__ import annotations

from dappbot_engine.jobs.build_completion import BuildCompletionJob

__all__ = ["BuildCompletionJob"]
