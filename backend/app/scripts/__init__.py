"""Operator command-line tools (installed as peakself-* console scripts)."""
