"""Student-side pieces: local progress store, gateway client and session controller."""
