"""TribeLife realtime chat and beacon matching backend."""
