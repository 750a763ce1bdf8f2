"""Webtoon studio: turn a prose story into a sequence of illustrated panels."""

__version__ = "0.1.0"
