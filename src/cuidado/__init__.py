"""Cuidado: hybrid memory retrieval, control signals and safety gating for local chat."""
