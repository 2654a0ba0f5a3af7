"""Intake agents."""
