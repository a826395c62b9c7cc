"""Helpers for feature file paths given on the command line."""

from __future__ import annotations

import re

_PATH_LINE = re.compile(r":([0-9]+)\Z")
_MAX_LINE = (1 << 63) - 1


def extract_feature_path_line(path: str) -> tuple[str, int]:
    """Split a trailing ``:<line>`` off a feature path.

    Returns the path and the line number, or -1 when no line is given.
    """
    match = _PATH_LINE.search(path)
    if match is not None:
        line = int(match.group(1))
        if line <= _MAX_LINE:
            return path[: path.rindex(":")], line
    return path, -1