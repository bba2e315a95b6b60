"""Core workflow logic: roles, ownership, approval machines and the gate."""
