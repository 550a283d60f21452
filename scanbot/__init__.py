"""Scan orchestration console for a four-axis orbital scanning rig."""
