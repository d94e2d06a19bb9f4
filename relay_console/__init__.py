"""Relay robot companion console."""
