"""Doctors Domain - doctor catalog, availability and attendance days (read-only)"""
