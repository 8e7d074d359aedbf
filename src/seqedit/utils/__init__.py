"""Utility helpers for seqedit."""
