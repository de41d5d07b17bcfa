"""Application services orchestrating the domain layer."""
