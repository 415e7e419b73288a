"""Queue framework seam (queue.py) and the ports the engine depends on (ports.py)."""
