"""Coloring, image codecs and size inflation."""
