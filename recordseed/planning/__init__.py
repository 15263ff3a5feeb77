"""Load planning: the reference graph between selected entity types and its load order."""
