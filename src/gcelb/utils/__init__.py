"""Utility helpers for gcelb."""
