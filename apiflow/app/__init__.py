"""HTTP front end for apiflow."""
