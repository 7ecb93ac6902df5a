"""Agents driving a promotion or restore run."""
