"""Service layer for the flip-finding pipeline."""
