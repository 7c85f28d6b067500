"""H-Bank authentication and session backend."""
