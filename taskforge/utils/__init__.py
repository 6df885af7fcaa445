"""Helpers shared by services: progress, environment, files, patterns."""
