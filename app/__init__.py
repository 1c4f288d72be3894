"""Studio application edges: storage backends and the HTTP adapter."""
