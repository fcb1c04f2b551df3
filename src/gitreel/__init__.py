"""gitreel - narrated video walkthroughs of git commits, diffs and codebases."""

__version__ = "0.1.0"
