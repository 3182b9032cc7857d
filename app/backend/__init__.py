"""
Streamlit backend: session state and page renderers
"""
