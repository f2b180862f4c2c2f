"""Domain services for matching, call scheduling and safety."""
