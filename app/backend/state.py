"""
Application state management for the annotator

Contains dataclasses for session state that persists across Streamlit reruns.
"""
from dataclasses import dataclass
from typing import Optional

from app import config
from app.services.annotation.models import EventType, PendingRegion, Role


@dataclass
class AnnotationState:
    """Application state for the annotate page"""
    current_module: Optional[str] = None
    current_screenshot_idx: int = 0
    selected_region_id: Optional[str] = None
    drawing_enabled: bool = False
    drag_mode: bool = False
    role: Role = Role.ADMIN
    # Event type shown in the list and on the canvas (None shows all)
    event_filter: Optional[EventType] = None
    # Drawn region waiting for an event type
    pending_region: Optional[PendingRegion] = None
    # Interaction engine for the current screenshot (rebuilt on navigation)
    engine: Optional["AnnotationEngine"] = None  # Forward reference
    last_batch_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def reset_screenshot(self) -> None:
        """Forget per-screenshot interaction state after navigating"""
        self.selected_region_id = None
        self.pending_region = None
        self.engine = None
        self.last_batch_id = None


def init_session_state():
    """Initialize session state if not already done"""
    import streamlit as st

    if "annotation_state" not in st.session_state:
        try:
            role = Role(config.DEFAULT_ROLE)
        except ValueError:
            role = Role.USER
        st.session_state.annotation_state = AnnotationState(role=role)
