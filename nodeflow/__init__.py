"""Visual workflow execution engine."""
