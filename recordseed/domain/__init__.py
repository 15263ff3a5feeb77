"""Domain models and the error taxonomy shared by every recordseed component."""
