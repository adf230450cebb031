"""
phasekit - phase-driven project workflows.

Projects move through phases (discovery, design, implementation, review,
finalize) under a finite-state machine. Each phase tracks its artifacts and
tasks, and transitions are gated by guards over that state.
"""

__version__ = "0.4.0"
