"""Conversational workflows."""
