"""Lecture feedback survey batch management (selection, conflict checks, upload/delete)."""
