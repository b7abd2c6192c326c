"""Slide and outline generation: jobs, orchestration, fallback and SSE streams."""
