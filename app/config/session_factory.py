from __future__ import annotations

from typing import TYPE_CHECKING

import streamlit as st

from smart_diff.loader import RoomLoader
from smart_diff.sources import (
    GitFileSource,
    LocalFileSource,
    load_comparison_inputs,
    resolve_reference,
    room_id,
)
from smart_diff.viewer import Viewer

if TYPE_CHECKING:
    from . import AppConfig


def get_viewer(config: AppConfig) -> Viewer:
    """Return the session's viewer, rebuilding it when the config changed.

    Centralizes session_state bookkeeping (viewer, loader, config) so the page
    script only deals with widgets.
    """
    viewer: Viewer | None = st.session_state.get("viewer")
    if viewer is None or st.session_state.get("viewer_config") != config.viewer:
        if viewer is not None and viewer.loader is not None:
            viewer.loader.close()
        viewer = Viewer(config=config.viewer, loader=RoomLoader(config.viewer))
        st.session_state["viewer"] = viewer
        st.session_state["viewer_config"] = config.viewer
        st.session_state["room"] = None
    return viewer


def load_room(config: AppConfig, viewer: Viewer, project: str, room: str) -> None:
    """Start decoding ``project/room`` in the background."""
    try:
        resolve_reference(config.repo, config.reference)
    except ValueError as e:
        # Common case: typo in the reference field
        st.error(f"Comparison failed: {e}")
        return
    working = LocalFileSource(config.repo)
    reference = GitFileSource(config.repo, config.reference)
    if viewer.loader is None:
        return
    viewer.loader.request(
        room_id(project, room),
        lambda: load_comparison_inputs(project, room, working, reference),
    )
    st.session_state["room"] = (project, room)


def poll_viewer(viewer: Viewer) -> bool:
    """Adopt a finished decode; report whether one is still running."""
    viewer.poll_loader()
    if viewer.load_error is not None:
        st.error(f"Cannot read room files: {viewer.load_error}")
    return viewer.pending
