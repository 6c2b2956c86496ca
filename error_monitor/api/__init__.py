"""HTTP diagnostics surface for the error monitor."""
