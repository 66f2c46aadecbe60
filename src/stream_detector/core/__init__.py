"""Configuration, shared models, reporting and error containment."""
