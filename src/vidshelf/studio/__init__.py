"""HTTP and WebSocket surface: job tracking, event fan-out, media serving."""
