from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

import streamlit as st

from smart_diff.config import RenderConfig, ViewerConfig
from smart_diff.sources import find_projects

from .session_factory import get_viewer, load_room, poll_viewer

__all__ = [
    "AppConfig",
    "get_config_from_widgets",
    "get_viewer",
    "load_room",
    "poll_viewer",
    "project_choices",
    "selected_room",
    "set_default_config",
]


@dataclass(frozen=True)
class AppConfig:
    repo: str
    reference: str
    viewer: ViewerConfig


def _initial_config() -> AppConfig:
    return AppConfig(
        repo=os.environ.get("SMART_DIFF_REPO", "."),
        reference=os.environ.get("SMART_DIFF_REFERENCE", "HEAD"),
        viewer=ViewerConfig(viewport=(1024, 640)),
    )


def set_default_config() -> None:
    if "config" not in st.session_state:
        st.session_state["config"] = _initial_config()


def _viewport_section(current: ViewerConfig) -> Tuple[int, int]:
    st.subheader("Viewport")
    width: int = st.number_input(
        "Width", min_value=128, value=current.viewport[0], step=64, key="viewport_w"
    )
    height: int = st.number_input(
        "Height", min_value=128, value=current.viewport[1], step=64, key="viewport_h"
    )
    return int(width), int(height)


def _render_section(current: RenderConfig) -> RenderConfig:
    st.subheader("Difference")
    baseline: float = st.slider(
        "Difference baseline",
        0.0,
        1.0,
        current.difference_baseline,
        step=0.01,
        key="difference_baseline",
        help="Brightness of unchanged pixels in the difference view.",
    )
    order_labels = {"Layer 1 beneath layer 2": (1, 2), "Layer 2 beneath layer 1": (2, 1)}
    labels: List[str] = list(order_labels)
    current_label = next(
        (k for k, v in order_labels.items() if v == current.stacking_order), labels[0]
    )
    label = st.selectbox(
        "Stacking order", labels, index=labels.index(current_label), key="stacking"
    )
    return replace(
        current, difference_baseline=baseline, stacking_order=order_labels[label]
    )


def get_config_from_widgets() -> AppConfig:
    current: AppConfig = st.session_state["config"]
    st.subheader("Repository")
    repo: str = st.text_input("Repository path", value=current.repo, key="repo")
    reference: str = st.text_input(
        "Git reference", value=current.reference, key="reference"
    )
    viewport = _viewport_section(current.viewer)
    render = _render_section(current.viewer.render)
    return AppConfig(
        repo=repo,
        reference=reference or "HEAD",
        viewer=replace(current.viewer, viewport=viewport, render=render),
    )


def project_choices(config: AppConfig) -> List[str]:
    try:
        return find_projects(config.repo)
    except OSError as e:
        st.error(f"Cannot scan {config.repo}: {e}")
        return []


def selected_room() -> Optional[Tuple[str, str]]:
    return st.session_state.get("room")
