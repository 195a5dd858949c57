"""Utility helpers for the requisition kernel."""
