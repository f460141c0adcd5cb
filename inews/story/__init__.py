"""NSML story model and decoder."""
