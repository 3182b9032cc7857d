"""
Event Map Application Package

Contains the Streamlit application organized into:
- config.py: Settings read from the environment
- main.py: Main entry point
- backend/: Session state and page renderers
- services/annotation/: Models, interaction engine, storage and canvas
"""


def __getattr__(name):
    """Lazy load the entry point so core services import without Streamlit."""
    if name == "main":
        from app.main import main
        return main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["main"]
