"""Pydantic contracts shared by the state machine, queue and worker."""
