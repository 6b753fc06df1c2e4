"""Scoring and evaluation engines. Pure functions over claim records; collaborators are passed in."""
