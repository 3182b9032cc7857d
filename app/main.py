"""
Event Map - Screenshot Event Annotator

Main application entry point.
"""
import streamlit as st

from app import config
from app.backend.state import init_session_state
from app.backend.pages.annotate import render_annotation_page
from app.logging_utils import setup_logging


def main():
    """Main application entry point"""
    setup_logging(config.LOG_LEVEL, log_dir=config.LOG_DIR)

    # Page config
    st.set_page_config(
        page_title="Event Map",
        page_icon="",
        layout="wide",
    )

    # Initialize session state
    init_session_state()

    st.sidebar.title("Event Map")
    st.sidebar.caption(f"Role: {st.session_state.annotation_state.role.value}")
    st.sidebar.divider()

    render_annotation_page()


if __name__ == "__main__":
    main()
