"""
Streamlit pages for the screenshot event annotator
"""
from .annotate import render_annotation_page

__all__ = ["render_annotation_page"]
