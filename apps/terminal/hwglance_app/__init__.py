"""Terminal front end for hwglance."""
