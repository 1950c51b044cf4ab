"""Core orchestration: pipeline, executor, cache, queue, usage."""
