import logging
import time
from collections import Counter
from typing import List, Optional, Tuple

import streamlit as st
from st_keyup import st_keyup  # type: ignore

from config import (
    AppConfig,
    get_config_from_widgets,
    get_viewer,
    load_room,
    poll_viewer,
    project_choices,
    selected_room,
    set_default_config,
)
from smart_diff.sources import LocalFileSource, list_rooms, modified_rooms
from smart_diff.types import Key
from smart_diff.viewer import Viewer

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

st.set_page_config(layout="wide", page_title="SMART diff")
st.markdown(
    """
    <style>
        header, footer, #MainMenu { visibility: hidden; }
        .stMainBlockContainer {
            padding-top: 0;
            padding-bottom: 0;
        }
    </style>
""",
    unsafe_allow_html=True,
)

KEY_HINT = "Keys: w/r/d view, 1/2 layers, t transparency, =/- zoom, [/] state"


def get_keyboard_keys() -> List[str]:
    """Characters typed into the key box since the previous rerun."""
    value: str = (
        st_keyup(
            "control",
            label_visibility="collapsed",
            key="viewer_key_input",
            placeholder=KEY_HINT,
        )
        or ""
    )
    prev_value: str = st.session_state.get("viewer_key_input_prev", "")
    st.session_state["viewer_key_input_prev"] = value
    if value == prev_value:
        return []
    new_values: List[str] = list((Counter(value) - Counter(prev_value)).elements())
    return [c for c in new_values if c in set(Key)]


def room_picker(config: AppConfig, viewer: Viewer) -> None:
    projects = project_choices(config)
    if not projects:
        st.warning("No SMART projects (project.xml) found in the repository.")
        return

    current: Optional[Tuple[str, str]] = selected_room()
    project_idx = projects.index(current[0]) if current and current[0] in projects else 0
    project = st.selectbox("Project", projects, index=project_idx, key="project")
    rooms = list_rooms(LocalFileSource(config.repo), project)
    if not rooms:
        st.warning(f"No rooms found in project {project}")
        return
    room_idx = rooms.index(current[1]) if current and current[1] in rooms else 0
    room = st.selectbox("Room", rooms, index=room_idx, key="room_select")
    if current != (project, room):
        load_room(config, viewer, project, room)

    st.divider()
    st.subheader("Modified rooms")
    try:
        changed = modified_rooms(config.repo, config.reference, projects)
    except ValueError as e:
        st.error(f"{e}")
        changed = []
    for changed_project, changed_room in changed:
        label = f"{changed_project}/{changed_room}"
        if st.button(label, key=f"modified_{label}", use_container_width=True):
            load_room(config, viewer, changed_project, changed_room)


def pan_controls(viewer: Viewer) -> None:
    step = viewer.config.pan_step
    _, up_col, _ = st.columns([1, 1, 1])
    with up_col:
        if st.button("⬆️", key="pan_up", use_container_width=True):
            viewer.push_pan(0, -step)
    left_col, down_col, right_col = st.columns([1, 1, 1])
    with left_col:
        if st.button("⬅️", key="pan_left", use_container_width=True):
            viewer.push_pan(-step, 0)
    with down_col:
        if st.button("⬇️", key="pan_down", use_container_width=True):
            viewer.push_pan(0, step)
    with right_col:
        if st.button("➡️", key="pan_right", use_container_width=True):
            viewer.push_pan(step, 0)


# --------- Main App ---------

set_default_config()
tab_viewer, tab_config = st.tabs(["Viewer", "Config"])

with tab_config:
    config: AppConfig = get_config_from_widgets()
    if st.button("Save", key="save_config_btn", use_container_width=True):
        st.session_state["config"] = config

config = st.session_state["config"]
viewer = get_viewer(config)

with tab_viewer:
    left_col, middle_col = st.columns([0.25, 0.75])

    with left_col:
        room_picker(config, viewer)
        st.divider()
        for key in get_keyboard_keys():
            viewer.push_key(key)
        pan_controls(viewer)

    loading = poll_viewer(viewer)

    with middle_col:
        frame = viewer.tick()
        session = viewer.session
        if session is not None:
            st.info(session.status_line(), icon="🔍")
            for error in session.errors:
                st.warning(f"{error}")
        st.image(frame)
        if session is not None and session.warnings:
            with st.expander(f"{len(session.warnings)} unresolved tiles"):
                for warning in session.warnings:
                    st.text(f"{warning}")

    if loading:
        time.sleep(0.1)
        st.rerun()
