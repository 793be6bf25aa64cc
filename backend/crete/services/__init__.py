"""External collaborators used by the analysis pipeline."""
