"""Managers implementing the stages of a promotion run."""
