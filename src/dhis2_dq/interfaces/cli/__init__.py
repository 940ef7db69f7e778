"""dhis2-dq command-line interface."""
