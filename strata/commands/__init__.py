"""Command implementations behind the strata CLI."""
