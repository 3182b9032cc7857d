"""
Service layer for the annotator application
"""
